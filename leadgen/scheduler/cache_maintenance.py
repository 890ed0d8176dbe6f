"""만료 캐시 정리 스케줄러

Durable Cache(search_cache)는 읽을 때 만료 여부를 확인하므로
정리가 늦어져도 결과가 틀려지지는 않습니다. 테이블 크기만 관리합니다.
"""

from typing import Callable, ContextManager, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from leadgen.core.config import settings
from leadgen.core.database import get_db_context
from leadgen.core.exceptions import DatabaseException
from leadgen.core.logging import logger
from leadgen.repositories.impl.search_cache_repository import SearchCacheRepository

JOB_ID = "purge_expired_search_cache"


class CacheMaintenanceScheduler:
    """Durable Cache 만료 행 정리"""

    @staticmethod
    def purge_expired_cache(
        session_factory: Callable[[], ContextManager[Session]] = get_db_context,
    ) -> dict:
        """만료 행 삭제 실행"""
        try:
            with session_factory() as db:
                deleted = SearchCacheRepository(db).purge_expired()
            logger.info(f"[Scheduler] Purged {deleted} expired search cache rows")
            return {"status": "success", "deleted": deleted}
        except DatabaseException as e:
            logger.error(f"[Scheduler] Failed to purge search cache: {e}")
            return {"status": "error", "error": str(e)}

    @staticmethod
    def schedule_with_apscheduler(interval_minutes: Optional[int] = None) -> BackgroundScheduler:
        """APScheduler를 사용한 스케줄링 설정 (start는 호출자가)"""
        minutes = interval_minutes or settings.cache_purge_interval_minutes
        scheduler = BackgroundScheduler(timezone="UTC")

        scheduler.add_job(
            CacheMaintenanceScheduler.purge_expired_cache,
            trigger=IntervalTrigger(minutes=minutes),
            id=JOB_ID,
            name="Purge expired search cache",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )

        logger.info(f"[Scheduler] Search cache purge scheduled every {minutes} minutes")
        return scheduler
