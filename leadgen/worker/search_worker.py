"""Search Worker - 백그라운드 검색 실행

작업 1건의 흐름:
    active 표시 → (일반 검색 | deep search | deep 페이지네이션)
    → 업체 저장 + 연락처 수집 등록 → 진행 상황 publish
    → 캐시 2단 저장 → completed 표시 → inflight 등록 해제

예외가 나면 작업을 failed 로 표시하고 등록을 해제한 뒤 예외를 다시 던집니다.
"""

from __future__ import annotations

import json
import math
from datetime import datetime, timedelta
from typing import Any, Callable, ContextManager, Dict, List, Optional

from sqlalchemy.orm import Session

from leadgen.core.config import settings
from leadgen.core.database import get_db_context
from leadgen.core.exceptions import CacheStoreUnavailable, DatabaseException, LeadGenException, SearchExpired
from leadgen.core.logging import logger
from leadgen.engine.job_store import JobStore
from leadgen.engine.orchestrator import release_registration
from leadgen.engine.result import CachedResult, SearchQuery
from leadgen.gateway.places_gateway import CellProgress, PlacesGateway, ScanOptions, SearchOptions, dedupe_places
from leadgen.repositories.impl.place_repository import PlaceRepository
from leadgen.repositories.impl.search_cache_repository import SearchCacheRepository
from leadgen.search.cache_key import build_deep_token, build_updates_channel, parse_deep_offset
from leadgen.search.grid import Viewport
from leadgen.services.hot_cache import HotCache
from leadgen.services.impl.kv_store import KeyValueStore, Publisher

# Places API 텍스트 검색 1회 최대 결과 수
UPSTREAM_MAX_PAGE_SIZE = 20


class SearchWorker:
    def __init__(
        self,
        store: KeyValueStore,
        gateway: PlacesGateway,
        publisher: Publisher,
        session_factory: Callable[[], ContextManager[Session]] = get_db_context,
        hot_cache: Optional[HotCache] = None,
        job_store: Optional[JobStore] = None,
        enqueue_enrichment: Optional[Callable[[str], Any]] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.publisher = publisher
        self.session_factory = session_factory
        self.hot_cache = hot_cache or HotCache(store)
        self.job_store = job_store or JobStore(store)
        self.enqueue_enrichment = enqueue_enrichment

    async def run(self, job_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        query = SearchQuery.from_payload(payload.get("query") or {})
        cache_key = payload.get("cache_key") or query.cache_key
        user_id = payload.get("user_id")
        tier = payload.get("tier")

        try:
            await self.job_store.mark_active(job_id)
            logger.info(f"[WORKER] job {job_id} started: {cache_key}")

            if query.is_deep_pagination:
                places, next_token = await self._deep_page(query)
            elif query.deep_search:
                places, next_token = await self._deep_search(job_id, query, user_id, tier)
            else:
                places, next_token = await self._standard_search(job_id, query, user_id, tier)

            self._persist(places)

            expires_at = datetime.utcnow() + timedelta(seconds=settings.durable_cache_ttl)
            result = CachedResult.build(places, next_token, expires_at).to_payload()
            await self._write_caches(cache_key, result)

            await self.job_store.complete(job_id, result)
            await self._publish(job_id, {
                "type": "completed",
                "total": len(places),
                "next_page_token": next_token,
            })
            logger.info(f"[WORKER] job {job_id} completed with {len(places)} places")
            return result
        except Exception as e:
            logger.error(f"[WORKER] job {job_id} failed: {type(e).__name__}: {e}")
            await self._mark_failed(job_id, str(e))
            await self._publish(job_id, {"type": "failed", "error": str(e)})
            raise
        finally:
            await release_registration(self.store, cache_key, job_id)

    async def _standard_search(self, job_id: str, query: SearchQuery, user_id, tier):
        page_size = settings.standard_page_size
        max_fetches = math.ceil(page_size / UPSTREAM_MAX_PAGE_SIZE) + 1
        places: List[Dict[str, Any]] = []
        token = query.page_token

        for _ in range(max_fetches):
            page = await self.gateway.search_text(
                query.text_query,
                SearchOptions(
                    page_token=token,
                    page_size=min(UPSTREAM_MAX_PAGE_SIZE, page_size - len(places)),
                    user_id=user_id,
                    tier=tier,
                ),
            )
            previous_token, token = token, page.next_page_token
            if not page.places:
                logger.warning(f"[WORKER] job {job_id}: empty upstream page, stop paging")
                token = None
                break
            await self._publish(job_id, {"type": "batch", "places": page.places})
            places = dedupe_places(places + page.places)
            if token and token == previous_token:
                logger.warning(f"[WORKER] job {job_id}: upstream repeated page token, stop paging")
                token = None
                break
            if not token or len(places) >= page_size:
                break
        else:
            logger.warning(f"[WORKER] job {job_id}: paging stopped after {max_fetches} upstream calls")

        return places[:page_size], token

    async def _deep_search(self, job_id: str, query: SearchQuery, user_id, tier):
        page_size = settings.deep_search_page_size

        # 도시 뷰포트 확인용 저비용 호출
        probe = await self.gateway.search_text(
            query.city.strip(),
            SearchOptions(page_size=1, user_id=user_id, tier=tier),
        )
        viewport = Viewport.from_api(probe.places[0].get("viewport")) if probe.places else None

        if viewport is None or (viewport.northeast.lat == 0 and viewport.northeast.lng == 0):
            logger.info(f"[WORKER] no viewport for '{query.city}', falling back to text search")
            page = await self.gateway.search_text(
                query.text_query,
                SearchOptions(user_id=user_id, tier=tier),
            )
            all_places = page.places
        else:
            async def on_cell(progress: CellProgress) -> None:
                if progress.depth != 0:
                    return
                percent = int((progress.index + 1) / progress.total * 90)
                try:
                    await self.job_store.update_progress(job_id, percent)
                except LeadGenException as e:
                    logger.warning(f"[WORKER] progress update skipped: {e}")
                await self._publish(job_id, {"type": "progress", "progress": percent, "api_calls": progress.api_calls})

            all_places = await self.gateway.scan_city(
                query.keyword.strip(),
                viewport,
                ScanOptions(user_id=user_id, tier=tier, on_cell=on_cell),
            )

        all_places = dedupe_places(all_places)
        logger.info(f"[WORKER] deep search found {len(all_places)} unique places")

        try:
            await self.store.set(
                query.deep_list_key,
                json.dumps(all_places, ensure_ascii=False),
                ex=settings.deep_list_ttl,
            )
        except CacheStoreUnavailable as e:
            logger.warning(f"[WORKER] deep list not stored, pagination will expire: {e}")

        first_page = all_places[:page_size]
        await self._publish(job_id, {"type": "batch", "places": first_page})
        next_token = build_deep_token(page_size) if len(all_places) > page_size else None
        return first_page, next_token

    async def _deep_page(self, query: SearchQuery):
        page_size = settings.deep_search_page_size
        offset = parse_deep_offset(query.page_token)

        raw = await self.store.get(query.deep_list_key)
        if not raw:
            raise SearchExpired(query.cache_key)
        stored = json.loads(raw)

        places = stored[offset:offset + page_size]
        next_token = build_deep_token(offset + page_size) if offset + page_size < len(stored) else None
        return places, next_token

    def _persist(self, places: List[Dict[str, Any]]) -> None:
        if not places:
            return
        try:
            with self.session_factory() as db:
                pending = PlaceRepository(db).upsert_many(places)
        except DatabaseException as e:
            logger.error(f"[WORKER] place persistence failed: {e}")
            return

        if not self.enqueue_enrichment:
            return
        for provider_id in pending:
            try:
                self.enqueue_enrichment(provider_id)
            except Exception as e:
                logger.warning(f"[WORKER] enrichment enqueue failed for {provider_id}: {type(e).__name__}: {e}")

    async def _write_caches(self, cache_key: str, result: Dict[str, Any]) -> None:
        await self.hot_cache.set(cache_key, result)
        try:
            with self.session_factory() as db:
                SearchCacheRepository(db).upsert(cache_key, result, settings.durable_cache_ttl)
        except DatabaseException as e:
            logger.error(f"[WORKER] durable cache write failed for {cache_key}: {e}")

    async def _mark_failed(self, job_id: str, error: str) -> None:
        try:
            await self.job_store.fail(job_id, error[:500])
        except LeadGenException as e:
            logger.warning(f"[WORKER] could not mark job {job_id} failed: {e}")

    async def _publish(self, job_id: str, message: Dict[str, Any]) -> None:
        message = {"job_id": job_id, **message}
        try:
            await self.publisher.publish(build_updates_channel(job_id), json.dumps(message, ensure_ascii=False))
        except CacheStoreUnavailable as e:
            logger.warning(f"[WORKER] publish skipped for {job_id}: {e}")
