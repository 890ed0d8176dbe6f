"""검색 작업 Celery 태스크"""

import asyncio
from typing import Any, Dict

from leadgen.core.logging import logger
from leadgen.gateway.places_gateway import PlacesGateway
from leadgen.services.impl.kv_store import RedisStore
from leadgen.tasks.celery_app import celery_app
from leadgen.tasks.enrichment_tasks import enqueue_enrichment
from leadgen.worker.search_worker import SearchWorker


async def _run_search(job_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    store = RedisStore()
    gateway = PlacesGateway(store)
    worker = SearchWorker(store, gateway, publisher=store, enqueue_enrichment=enqueue_enrichment)
    try:
        return await worker.run(job_id, payload)
    finally:
        await gateway.close()
        await store.close()


@celery_app.task(name="leadgen.tasks.search_tasks.run_search")
def run_search(job_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """검색 작업 실행 (실패 시 재시도하지 않음: 작업은 failed, 등록은 해제됨)"""
    logger.info(f"[TASK] run_search {job_id}")
    return asyncio.run(_run_search(job_id, payload))
