"""주기 작업 스케줄러 - export only."""

from .cache_maintenance import CacheMaintenanceScheduler

__all__ = ["CacheMaintenanceScheduler"]
