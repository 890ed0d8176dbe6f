"""Search Orchestrator - 검색 요청 진입점

요청 하나를 다음 중 하나로 결정합니다:
1. Hot Cache 히트 → CACHED (과금 없음)
2. Durable Cache 히트 → Hot Cache 백필 후 CACHED (과금 없음)
3. 같은 키의 작업이 이미 진행 중 → 기존 작업에 합류 (JOB, "joined", 과금 없음)
4. 리더 → 크레딧 차감 → 작업 생성/등록 → JOB (message=None)

동일 키에 대한 리더는 inflight 등록(SET NX EX) 하나의 원자 연산으로만 결정됩니다.
등록은 자체 TTL을 가지므로 워커가 정리 없이 죽어도 영구 잠금되지 않습니다.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Callable, ContextManager, Dict, Optional

from sqlalchemy.orm import Session

from leadgen.core.config import settings
from leadgen.core.database import get_db_context
from leadgen.core.exceptions import (
    CacheStoreUnavailable,
    DispatchFailed,
    DuplicateDispatch,
    LeadGenException,
    SearchExpired,
    ValidationException,
)
from leadgen.core.logging import logger
from leadgen.engine.job_store import JobQueue, JobRecord, JobStore
from leadgen.engine.pricing import credit_charge_for
from leadgen.engine.result import CachedResult, RequestContext, SearchOutcome, SearchQuery
from leadgen.repositories.impl.credit_repository import CreditRepository
from leadgen.repositories.impl.search_cache_repository import SearchCacheRepository
from leadgen.search.cache_key import build_inflight_key, parse_deep_offset
from leadgen.services.hot_cache import HotCache
from leadgen.services.impl.kv_store import KeyValueStore

SessionFactory = Callable[[], ContextManager[Session]]

# 등록 직후 TTL이 만료되어 SET NX와 GET 사이에서 사라진 경우의 재시도 횟수
_REGISTER_ATTEMPTS = 3


async def release_registration(store: KeyValueStore, cache_key: str, job_id: str) -> bool:
    """inflight 등록 해제 (job_id가 일치할 때만)"""
    try:
        released = await store.delete_if_equals(build_inflight_key(cache_key), job_id)
        if not released:
            logger.debug(f"[INFLIGHT] {cache_key} no longer owned by {job_id}")
        return released
    except CacheStoreUnavailable as e:
        logger.warning(f"[INFLIGHT] release failed for {cache_key}, TTL will clear it: {e}")
        return False


class SearchOrchestrator:
    """검색 요청 통합/캐싱 오케스트레이터"""

    def __init__(
        self,
        store: KeyValueStore,
        job_queue: JobQueue,
        session_factory: SessionFactory = get_db_context,
        hot_cache: Optional[HotCache] = None,
        job_store: Optional[JobStore] = None,
        inflight_ttl_seconds: Optional[int] = None,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        """
        Args:
            store: 공유 키-값 저장소 (inflight 등록, deep 목록)
            job_queue: 작업 큐 (enqueue)
            session_factory: DB 세션 컨텍스트 팩토리
            hot_cache: Hot Cache (기본: store 기반)
            job_store: 작업 상태 저장소 (기본: store 기반)
            inflight_ttl_seconds: inflight 등록 TTL
            id_factory: 작업 ID 생성기
        """
        if store is None:
            raise ValueError("store must not be None")
        if job_queue is None:
            raise ValueError("job_queue must not be None")

        self.store = store
        self.job_queue = job_queue
        self.session_factory = session_factory
        self.hot_cache = hot_cache or HotCache(store)
        self.job_store = job_store or JobStore(store)
        self.inflight_ttl_seconds = int(inflight_ttl_seconds or settings.inflight_ttl_seconds)
        self._new_job_id = id_factory

    async def search(self, query: SearchQuery, ctx: RequestContext) -> SearchOutcome:
        """검색 요청 처리

        Raises:
            ValidationException: city/keyword 누락, 잘못된 deep 토큰
            InsufficientCredits: 리더인데 잔액 부족 (등록 해제됨)
            SearchExpired: deep 페이지네이션인데 저장된 목록이 만료됨
            DispatchFailed: 크레딧 차감 후 작업 등록 실패
            CacheStoreUnavailable: inflight 등록 자체가 불가능한 경우
        """
        if not query.normalized_city:
            raise ValidationException("city", "required")
        if not query.normalized_keyword:
            raise ValidationException("keyword", "required")
        if not ctx or not ctx.user_id:
            raise ValidationException("user_id", "required")
        if query.is_deep_pagination:
            parse_deep_offset(query.page_token)

        cache_key = query.cache_key

        # 1. Hot Cache
        hit = await self.hot_cache.get(cache_key)
        if hit is not None:
            logger.info(f"[ORCHESTRATOR] hot cache hit: {cache_key}")
            return SearchOutcome.cached(CachedResult.from_payload(hit).to_payload())

        # 2. Durable Cache → Hot Cache 백필
        durable = self._read_durable(cache_key)
        if durable is not None:
            payload, expires_at = durable
            remaining = int((expires_at - datetime.utcnow()).total_seconds())
            if remaining > 0:
                await self.hot_cache.set(cache_key, payload, ttl_seconds=min(self.hot_cache.ttl_seconds, remaining))
            logger.info(f"[ORCHESTRATOR] durable cache hit: {cache_key} (remaining {remaining}s)")
            return SearchOutcome.cached(CachedResult.from_payload(payload).to_payload())

        # deep 페이지네이션: 과금 전에 저장 목록 확인
        if query.is_deep_pagination:
            empty_page = await self._peek_deep_list(query)
            if empty_page is not None:
                return SearchOutcome.cached(empty_page)

        # 3. 합류 또는 리더
        return await self._register_or_join(query, ctx, cache_key)

    async def get_job(self, job_id: str) -> JobRecord:
        """작업 상태 조회 (JobNotFound)"""
        return await self.job_store.require(job_id)

    def _read_durable(self, cache_key: str):
        try:
            with self.session_factory() as db:
                return SearchCacheRepository(db).get_unexpired(cache_key)
        except Exception as e:
            logger.warning(f"[ORCHESTRATOR] durable cache unavailable, treating as miss: {type(e).__name__}: {e}")
            return None

    async def _peek_deep_list(self, query: SearchQuery) -> Optional[Dict[str, Any]]:
        """저장된 deep 목록이 없으면 SearchExpired, 오프셋이 끝을 넘으면 빈 페이지."""
        offset = parse_deep_offset(query.page_token)
        try:
            raw = await self.store.get(query.deep_list_key)
        except CacheStoreUnavailable as e:
            logger.warning(f"[ORCHESTRATOR] deep list peek skipped: {e}")
            return None

        if not raw:
            raise SearchExpired(query.cache_key)
        try:
            stored = json.loads(raw)
        except json.JSONDecodeError:
            raise SearchExpired(query.cache_key)

        if offset >= len(stored):
            logger.info(f"[ORCHESTRATOR] deep offset {offset} past end ({len(stored)}), empty page")
            return CachedResult(places=[], next_page_token=None).to_payload()
        return None

    async def _register_or_join(self, query: SearchQuery, ctx: RequestContext, cache_key: str) -> SearchOutcome:
        inflight_key = build_inflight_key(cache_key)

        for _ in range(_REGISTER_ATTEMPTS):
            job_id = self._new_job_id()
            if await self.store.set(inflight_key, job_id, ex=self.inflight_ttl_seconds, nx=True):
                return await self._lead(query, ctx, cache_key, job_id)

            existing = await self.store.get(inflight_key)
            if existing:
                logger.info(f"[ORCHESTRATOR] joined job {existing} for {cache_key} (user={ctx.user_id})")
                return SearchOutcome.joined(existing)

        raise CacheStoreUnavailable("register", f"inflight registration for {cache_key} kept expiring")

    async def _lead(self, query: SearchQuery, ctx: RequestContext, cache_key: str, job_id: str) -> SearchOutcome:
        """리더: 크레딧 차감 → 작업 생성 → enqueue"""
        try:
            # 등록 직전에 워커가 캐시를 채웠을 수 있음
            hit = await self.hot_cache.get(cache_key)
            if hit is not None:
                await release_registration(self.store, cache_key, job_id)
                return SearchOutcome.cached(CachedResult.from_payload(hit).to_payload())

            with self.session_factory() as db:
                credits = CreditRepository(db)
                tier = credits.get_tier(ctx.user_id)
                charge = credit_charge_for(query, tier)
                credits.debit(
                    ctx.user_id,
                    charge.amount,
                    charge.tx_type,
                    charge.description,
                    metadata={"cache_key": cache_key, "job_id": job_id, "ip": ctx.ip},
                    history=None if query.is_pagination else query.to_payload(),
                )
        except Exception:
            await release_registration(self.store, cache_key, job_id)
            raise

        try:
            owner = await self.store.get(build_inflight_key(cache_key))
            if owner != job_id:
                raise DuplicateDispatch(cache_key, details={"job_id": job_id, "owner": owner})

            await self.job_store.create(job_id, cache_key)
            await self.job_queue.enqueue({
                "job_id": job_id,
                "cache_key": cache_key,
                "query": query.to_payload(),
                "user_id": ctx.user_id,
                "tier": tier,
            })
        except DuplicateDispatch:
            logger.error(
                f"[ANOMALY] duplicate dispatch for {cache_key}: user={ctx.user_id} "
                f"charged {charge.amount} credits, job {job_id} not dispatched"
            )
            raise
        except Exception as e:
            logger.error(
                f"[ANOMALY] credits debited but dispatch failed: user={ctx.user_id} amount={charge.amount} "
                f"job={job_id} key={cache_key}: {type(e).__name__}: {e}"
            )
            await self._mark_dispatch_failed(job_id)
            await release_registration(self.store, cache_key, job_id)
            raise DispatchFailed(job_id, str(e))

        logger.info(f"[ORCHESTRATOR] dispatched job {job_id} for {cache_key} (user={ctx.user_id}, cost={charge.amount})")
        return SearchOutcome.new_job(job_id)

    async def _mark_dispatch_failed(self, job_id: str) -> None:
        try:
            if await self.job_store.get(job_id) is not None:
                await self.job_store.fail(job_id, "dispatch_failed")
        except LeadGenException as e:
            logger.warning(f"[ORCHESTRATOR] could not mark job {job_id} failed: {e}")
