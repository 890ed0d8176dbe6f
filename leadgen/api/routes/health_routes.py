"""헬스 체크 엔드포인트"""
from fastapi import APIRouter, Depends
from datetime import datetime

from leadgen.schemas.search_schema import HealthResponse
from leadgen.services.impl.kv_store import KeyValueStore
from leadgen.api.routes.search_routes import get_store
from leadgen.core.database import engine
from leadgen.core.exceptions import CacheStoreUnavailable
from leadgen.core.logging import logger
from leadgen import __version__

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(store: KeyValueStore = Depends(get_store)):
    """
    헬스 체크 엔드포인트

    - Redis 연결 상태 (Hot Cache / inflight 등록 / 예산 카운터)
    - DB 연결 상태 (크레딧 / Durable Cache)
    """
    redis_ok = False
    db_ok = False

    # Redis 체크
    try:
        redis_ok = await store.ping()
    except CacheStoreUnavailable as e:
        logger.warning(f"Cache connection failed: {e.error_code}")

    # DB 체크
    try:
        with engine.connect() as connection:
            connection.exec_driver_sql("SELECT 1")
            db_ok = True
    except Exception as e:
        logger.error(f"Database connection error: {e}")

    status = "ok" if redis_ok and db_ok else ("degraded" if redis_ok or db_ok else "error")

    return HealthResponse(
        status=status,
        redis=redis_ok,
        database=db_ok,
        timestamp=datetime.now(),
        version=__version__,
    )


@router.get("/")
async def root():
    """루트 엔드포인트"""
    return {
        "service": "업체 검색 서비스",
        "version": __version__,
        "docs": "/docs"
    }
