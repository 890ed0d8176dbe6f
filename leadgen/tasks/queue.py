"""JobQueue 구현 - Celery"""

import asyncio
from typing import Any, Dict, Optional

from leadgen.core.logging import logger
from leadgen.engine.job_store import JobStore


class CeleryJobQueue:
    """검색 작업을 Celery 로 보냅니다. Celery task_id 는 작업 ID와 같습니다."""

    def __init__(self, job_store: JobStore):
        self.job_store = job_store

    async def enqueue(self, payload: Dict[str, Any]) -> str:
        from leadgen.tasks.search_tasks import run_search

        job_id = payload["job_id"]
        # apply_async 는 브로커 I/O 를 동기로 수행
        await asyncio.to_thread(run_search.apply_async, args=(job_id, payload), task_id=job_id)
        logger.debug(f"[QUEUE] enqueued {job_id}")
        return job_id

    async def get_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        record = await self.job_store.get(job_id)
        return record.to_dict() if record else None
