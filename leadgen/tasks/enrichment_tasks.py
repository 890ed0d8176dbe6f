"""연락처 수집 Celery 태스크"""

import asyncio
from typing import Optional

from leadgen.core.logging import logger
from leadgen.enrichment.http_client import SharedHttpClient
from leadgen.enrichment.scraper import ContactScraper, enrich_place
from leadgen.tasks.celery_app import celery_app


async def _enrich(provider_id: str) -> Optional[str]:
    client = SharedHttpClient()
    try:
        return await enrich_place(provider_id, ContactScraper(client))
    finally:
        await client.close()


@celery_app.task(name="leadgen.tasks.enrichment_tasks.enrich_place", ignore_result=True)
def enrich_place_task(provider_id: str) -> Optional[str]:
    logger.info(f"[TASK] enrich_place {provider_id}")
    return asyncio.run(_enrich(provider_id))


def enqueue_enrichment(provider_id: str) -> None:
    enrich_place_task.apply_async(args=(provider_id,))
