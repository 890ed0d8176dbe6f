"""Repositories implementation package."""

from .credit_repository import CreditRepository
from .place_repository import PlaceRepository
from .search_cache_repository import SearchCacheRepository

__all__ = ["CreditRepository", "PlaceRepository", "SearchCacheRepository"]
