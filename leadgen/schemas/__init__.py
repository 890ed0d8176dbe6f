"""Pydantic 스키마 패키지 - export only."""

from .search_schema import (
    ErrorResponse,
    HealthResponse,
    JobStatusResponse,
    PlaceItem,
    SearchData,
    SearchRequest,
    SearchResponse,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "JobStatusResponse",
    "PlaceItem",
    "SearchData",
    "SearchRequest",
    "SearchResponse",
]
