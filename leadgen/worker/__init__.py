"""Background search worker."""

from .search_worker import SearchWorker

__all__ = ["SearchWorker"]
