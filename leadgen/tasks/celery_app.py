"""Celery 앱 설정

브로커/결과 백엔드는 별도 설정이 없으면 redis_url 을 그대로 사용합니다.
"""

from celery import Celery

from leadgen.core.config import settings


def create_celery_app() -> Celery:
    broker_url = settings.celery_broker_url or settings.redis_url
    result_backend = settings.celery_result_backend or broker_url

    app = Celery(
        "leadgen",
        broker=broker_url,
        backend=result_backend,
        include=["leadgen.tasks.search_tasks", "leadgen.tasks.enrichment_tasks"],
    )
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        # 작업 상태는 JobStore 에서 관리하므로 결과는 짧게만 보관
        result_expires=settings.job_ttl_seconds,
        task_time_limit=settings.search_task_time_limit,
        task_soft_time_limit=max(1, settings.search_task_time_limit - 30),
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        worker_hijack_root_logger=False,
        task_routes={
            "leadgen.tasks.search_tasks.*": {"queue": "search"},
            "leadgen.tasks.enrichment_tasks.*": {"queue": "enrichment"},
        },
    )
    return app


celery_app = create_celery_app()
