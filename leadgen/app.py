"""FastAPI 앱 팩토리"""
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from leadgen.core.config import settings
from leadgen.core.database import init_db
from leadgen.core.exceptions import LeadGenException
from leadgen.core.logging import logger
from leadgen.api import (
    health_router,
    leadgen_exception_handler,
    search_router,
    shutdown_services,
    validation_exception_handler,
)
from leadgen.scheduler import CacheMaintenanceScheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 생명주기"""
    logger.info("Starting application...")
    init_db()

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = CacheMaintenanceScheduler.schedule_with_apscheduler()
        scheduler.start()

    logger.info("Application started")
    yield
    logger.info("Shutting down application...")

    if scheduler is not None:
        scheduler.shutdown(wait=False)
    await shutdown_services()


def create_app() -> FastAPI:
    """
    FastAPI 앱 생성 (Factory Pattern)

    Returns:
        FastAPI 앱 인스턴스
    """
    app = FastAPI(
        title=settings.api_title,
        description=settings.api_description,
        version=settings.api_version,
        lifespan=lifespan
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 구조화된 에러 응답
    app.add_exception_handler(LeadGenException, leadgen_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # 라우터 등록
    app.include_router(health_router)
    app.include_router(search_router)

    return app

# 앱 인스턴스 생성 (uvicorn이 로드할 수 있도록)
app = create_app()
