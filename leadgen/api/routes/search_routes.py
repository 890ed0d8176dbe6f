"""Search Routes - SearchOrchestrator 로 요청 위임

HTTP Layer는 요청 검증과 응답 변환만 담당합니다.
과금/합류/캐시 판단은 모두 Engine Layer에서 이루어집니다.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from leadgen.core.exceptions import LeadGenException
from leadgen.core.logging import logger
from leadgen.engine import JobStore, RequestContext, SearchOrchestrator, SearchQuery
from leadgen.schemas.search_schema import (
    ErrorResponse,
    JobStatusResponse,
    SearchRequest,
    SearchResponse,
)
from leadgen.services.impl.kv_store import RedisStore
from leadgen.tasks.queue import CeleryJobQueue

router = APIRouter(prefix="/api/v1", tags=["search"])

# 싱글톤 서비스
_store: Optional[RedisStore] = None
_orchestrator: Optional[SearchOrchestrator] = None

# error_code → HTTP 상태 코드
ERROR_STATUS_CODES = {
    "INSUFFICIENT_CREDITS": 402,
    "JOB_NOT_FOUND": 404,
    "SEARCH_EXPIRED": 410,
    "VALIDATION_ERROR": 400,
    "BUDGET_EXCEEDED": 503,
    "BREAKER_OPEN": 503,
    "UPSTREAM_TRANSIENT": 503,
    "INFLIGHT_LIMIT": 503,
    "CACHE_STORE_UNAVAILABLE": 503,
    "DISPATCH_FAILED": 503,
    "UPSTREAM_FATAL": 502,
}


def get_store() -> RedisStore:
    """RedisStore 싱글톤"""
    global _store
    if _store is None:
        _store = RedisStore()
    return _store


def get_orchestrator(store: RedisStore = Depends(get_store)) -> SearchOrchestrator:
    """SearchOrchestrator 싱글톤

    Engine Layer의 진입점을 제공합니다.
    """
    global _orchestrator
    if _orchestrator is None:
        job_store = JobStore(store)
        _orchestrator = SearchOrchestrator(
            store=store,
            job_queue=CeleryJobQueue(job_store),
            job_store=job_store,
        )
    return _orchestrator


async def shutdown_services() -> None:
    """앱 종료 시 싱글톤 정리"""
    global _store, _orchestrator
    store, _store, _orchestrator = _store, None, None
    if store is not None:
        await store.close()


def get_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """인증 계층이 채워주는 사용자 ID"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id.strip()


@router.post(
    "/search",
    response_model=SearchResponse,
    responses={402: {"model": ErrorResponse}, 410: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def search_places(
    body: SearchRequest,
    request: Request,
    user_id: str = Depends(get_user_id),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
):
    """업체 검색 API

    Flow:
        1. Hot Cache → Durable Cache (히트 시 CACHED, 과금 없음)
        2. 같은 검색이 진행 중이면 기존 작업에 합류 (JOB, message="joined")
        3. 아니면 크레딧 차감 후 작업 생성 (JOB)
    """
    query = SearchQuery(
        city=body.city,
        keyword=body.keyword,
        deep_search=body.deep_search,
        page_token=body.page_token,
    )
    ctx = RequestContext(
        user_id=user_id,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    logger.info(f"[API] search request: user={user_id} deep={body.deep_search} paged={bool(body.page_token)}")

    outcome = await orchestrator.search(query, ctx)
    return SearchResponse(**outcome.to_dict())


@router.get("/jobs/{job_id}", response_model=JobStatusResponse, responses={404: {"model": ErrorResponse}})
async def get_job_status(
    job_id: str,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
):
    """작업 상태 조회"""
    record = await orchestrator.get_job(job_id)
    return JobStatusResponse(**record.to_dict())


async def leadgen_exception_handler(request: Request, exc: LeadGenException) -> JSONResponse:
    """구조화된 예외 → JSON 에러 응답"""
    status_code = ERROR_STATUS_CODES.get(exc.error_code, 500)
    if status_code >= 500:
        logger.error(f"[API] {request.url.path} failed: {exc}")
    else:
        logger.info(f"[API] {request.url.path} rejected: {exc.error_code}")
    body = ErrorResponse(error_code=exc.error_code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """요청 본문 검증 실패 → 422"""
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    logger.warning(f"[API] Input validation failed: {len(errors)} error(s)")
    body = ErrorResponse(error_code="VALIDATION_ERROR", message="입력 검증 실패", details={"errors": errors})
    return JSONResponse(status_code=422, content=body.model_dump())
