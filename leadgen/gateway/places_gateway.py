"""Places API 게이트웨이

업스트림 호출 1회(attempt)마다 아래 순서로 게이트를 통과합니다:
    예산 예약 → 회로차단기 → 동시 호출 슬롯 → HTTP 호출 (시도별 타임아웃)

- 성공: 예약 확정, 차단기 성공
- 업스트림 도달 후 실패 (5xx, 429, 타임아웃): 예약 확정 (비용 발생), 차단기 실패
  (429 이외의 4xx는 요청 문제이므로 차단기에 반영하지 않음)
- 업스트림 미도달 (게이트 거절, 연결 실패): 예약 취소

재시도는 AttemptOutcome(SUCCESS / RETRYABLE / FATAL)을 반환하는 명시적 루프로 처리하며,
모든 게이트는 매 시도마다 다시 확인합니다.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from leadgen.core.config import settings
from leadgen.core.exceptions import (
    BreakerOpen,
    BudgetExceeded,
    InflightLimitExceeded,
    LeadGenException,
    UpstreamFatal,
    UpstreamTransient,
)
from leadgen.core.logging import logger, mask_secret
from leadgen.engine.budget import BudgetLedger, budget_scopes
from leadgen.engine.circuit_breaker import CircuitBreaker, get_breaker
from leadgen.engine.inflight_limiter import InflightLimiter
from leadgen.search.grid import GridPoint, Viewport, cell_viewport, generate_grid
from leadgen.services.impl.kv_store import KeyValueStore

PLACES_RESOURCE = "places"

RETRYABLE_STATUS = frozenset({500, 502, 503, 504})

FIELD_MASK = ",".join([
    "places.id",
    "places.displayName",
    "places.formattedAddress",
    "places.nationalPhoneNumber",
    "places.websiteUri",
    "places.rating",
    "places.userRatingCount",
    "places.regularOpeningHours",
    "places.businessStatus",
    "places.location",
    "places.viewport",
    "places.types",
    "nextPageToken",
])


@dataclass
class SearchOptions:
    page_token: Optional[str] = None
    page_size: Optional[int] = None
    location_bias: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = None
    tier: Optional[str] = None


@dataclass
class PlacesPage:
    places: List[Dict[str, Any]] = field(default_factory=list)
    next_page_token: Optional[str] = None


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"  # 재시도 중단 (오류 자체는 UpstreamTransient일 수도 있음, 예: 429)


@dataclass
class AttemptOutcome:
    kind: OutcomeKind
    page: Optional[PlacesPage] = None
    error: Optional[LeadGenException] = None

    @classmethod
    def success(cls, page: PlacesPage) -> "AttemptOutcome":
        return cls(OutcomeKind.SUCCESS, page=page)

    @classmethod
    def retryable(cls, error: LeadGenException) -> "AttemptOutcome":
        return cls(OutcomeKind.RETRYABLE, error=error)

    @classmethod
    def fatal(cls, error: LeadGenException) -> "AttemptOutcome":
        return cls(OutcomeKind.FATAL, error=error)


@dataclass
class CellProgress:
    depth: int
    index: int
    total: int
    cell_results: int
    api_calls: int


@dataclass
class ScanOptions:
    max_pages_per_cell: int = field(default_factory=lambda: settings.scan_max_pages_per_cell)
    max_api_calls: int = field(default_factory=lambda: settings.scan_max_api_calls)
    max_depth: int = field(default_factory=lambda: settings.scan_max_depth)
    recursion_threshold: int = field(default_factory=lambda: settings.scan_recursion_threshold)
    page_delay_s: float = field(default_factory=lambda: settings.scan_page_delay_s)
    user_id: Optional[str] = None
    tier: Optional[str] = None
    on_cell: Optional[Callable[[CellProgress], Awaitable[None]]] = None


@dataclass
class _CallCounter:
    count: int = 0


def transform_place(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Places API 응답 항목 → 내부 PlaceSummary dict"""
    display_name = raw.get("displayName") or {}
    opening = raw.get("regularOpeningHours") or {}
    return {
        "place_id": raw.get("id"),
        "name": display_name.get("text") or "",
        "rating": raw.get("rating"),
        "user_ratings_total": raw.get("userRatingCount"),
        "formatted_address": raw.get("formattedAddress"),
        "formatted_phone_number": raw.get("nationalPhoneNumber"),
        "website": raw.get("websiteUri"),
        "business_status": raw.get("businessStatus"),
        "location": raw.get("location"),
        "viewport": raw.get("viewport"),
        "types": raw.get("types") or [],
        "opening_hours": {"open_now": opening.get("openNow")},
    }


def dedupe_places(places: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    unique: Dict[str, Dict[str, Any]] = {}
    for place in places:
        place_id = place.get("place_id")
        if place_id:
            unique[place_id] = place
    return list(unique.values())


class PlacesGateway:
    """업스트림 Places API 래퍼 (예산 / 차단기 / 동시성 / 재시도)"""

    def __init__(
        self,
        store: KeyValueStore,
        client: Optional[httpx.AsyncClient] = None,
        ledger: Optional[BudgetLedger] = None,
        breaker: Optional[CircuitBreaker] = None,
        limiter: Optional[InflightLimiter] = None,
        api_keys: Optional[List[str]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.ledger = ledger or BudgetLedger(store)
        self.breaker = breaker or get_breaker(PLACES_RESOURCE)
        self.limiter = limiter or InflightLimiter(store, PLACES_RESOURCE)
        self.mock = settings.places_mock
        self.client = client or self._default_client()
        self.url = settings.places_api_url
        self.cost = settings.places_estimated_cost_per_call_usd
        self.max_attempts = settings.places_max_attempts
        self.backoff_base_s = settings.places_backoff_base_s
        self.backoff_max_s = settings.places_backoff_max_s
        self.timeout_s = settings.places_fetch_timeout_s
        self._sleep = sleep

        keys = api_keys if api_keys is not None else settings.api_keys
        if self.mock and not keys:
            keys = ["mock-key"]
        self._api_keys = list(keys)
        self._key_cycle = itertools.cycle(self._api_keys) if self._api_keys else None
        self._key_lock = threading.Lock()

    def _default_client(self) -> httpx.AsyncClient:
        if self.mock:
            from leadgen.gateway.mock_places import mock_transport

            logger.info("[GATEWAY] PLACES_MOCK enabled, using in-process mock transport")
            return httpx.AsyncClient(transport=mock_transport())
        return httpx.AsyncClient()

    async def close(self) -> None:
        await self.client.aclose()

    def _next_api_key(self) -> str:
        """라운드 로빈 API 키"""
        if self._key_cycle is None:
            raise UpstreamFatal("Places API keys configuration is missing")
        with self._key_lock:
            return next(self._key_cycle)

    def backoff_delay(self, attempt: int) -> float:
        return min(self.backoff_base_s * (2 ** attempt), self.backoff_max_s)

    async def search_text(self, query_text: str, options: Optional[SearchOptions] = None) -> PlacesPage:
        """텍스트 검색 1페이지

        Raises:
            BudgetExceeded, BreakerOpen: 게이트 거절 (업스트림 호출 없음)
            UpstreamTransient: 재시도 소진 또는 429
            UpstreamFatal: 재시도 불가 오류
        """
        options = options or SearchOptions()
        last_error: Optional[LeadGenException] = None

        for attempt in range(self.max_attempts):
            outcome = await self._attempt(query_text, options, self._next_api_key())

            if outcome.kind == OutcomeKind.SUCCESS:
                return outcome.page
            if outcome.kind == OutcomeKind.FATAL:
                raise outcome.error

            last_error = outcome.error
            if attempt < self.max_attempts - 1:
                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"[GATEWAY] attempt {attempt + 1}/{self.max_attempts} failed ({last_error}), retry in {delay:.1f}s"
                )
                await self._sleep(delay)

        logger.error(f"[GATEWAY] retries exhausted for '{query_text}': {last_error}")
        raise last_error or UpstreamTransient("max retries exceeded")

    async def _attempt(self, query_text: str, options: SearchOptions, api_key: str) -> AttemptOutcome:
        try:
            reservation = await self.ledger.reserve_all(budget_scopes(options.user_id, options.tier), self.cost)
        except BudgetExceeded as e:
            logger.warning(f"[GATEWAY] budget gate rejected call: {e}")
            return AttemptOutcome.fatal(e)

        try:
            self.breaker.allow()
        except BreakerOpen as e:
            await reservation.rollback()
            return AttemptOutcome.fatal(e)

        body: Dict[str, Any] = {
            "textQuery": query_text,
            "languageCode": settings.places_language_code,
            "pageSize": options.page_size or settings.standard_page_size,
        }
        if options.page_token:
            body["pageToken"] = options.page_token
        if options.location_bias:
            body["locationBias"] = options.location_bias
        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": api_key,
            "X-Goog-FieldMask": FIELD_MASK,
        }

        try:
            async with self.limiter.slot():
                response = await self.client.post(self.url, json=body, headers=headers, timeout=self.timeout_s)
        except InflightLimitExceeded as e:
            await reservation.rollback()
            self.breaker.release()
            return AttemptOutcome.fatal(e)
        except (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout) as e:
            await reservation.rollback()
            self.breaker.record_failure()
            logger.warning(f"[GATEWAY] connect failed (key={mask_secret(api_key)}): {type(e).__name__}")
            return AttemptOutcome.retryable(UpstreamTransient(f"connect error: {type(e).__name__}"))
        except httpx.TimeoutException as e:
            await reservation.commit()
            self.breaker.record_failure()
            return AttemptOutcome.retryable(UpstreamTransient(f"timeout after {self.timeout_s}s: {type(e).__name__}"))
        except httpx.HTTPError as e:
            await reservation.commit()
            self.breaker.record_failure()
            return AttemptOutcome.retryable(UpstreamTransient(f"transport error: {type(e).__name__}"))
        except BaseException:
            # 취소(CancelledError) 포함: 프로브 슬롯은 반드시 반환
            self.breaker.release()
            await reservation.rollback()
            raise

        await reservation.commit()
        status = response.status_code

        if status == 200:
            try:
                data = response.json()
            except ValueError:
                self.breaker.record_failure()
                return AttemptOutcome.fatal(UpstreamFatal("invalid JSON in upstream response", status))
            self.breaker.record_success()
            return AttemptOutcome.success(
                PlacesPage(
                    places=[transform_place(p) for p in (data.get("places") or [])],
                    next_page_token=data.get("nextPageToken") or None,
                )
            )

        if status == 429:
            self.breaker.record_failure()
            logger.error(f"[GATEWAY] quota exceeded (key={mask_secret(api_key)})")
            return AttemptOutcome.fatal(UpstreamTransient("quota exceeded", status))

        if status in RETRYABLE_STATUS:
            self.breaker.record_failure()
            return AttemptOutcome.retryable(UpstreamTransient(f"HTTP {status}", status))

        if status >= 500:
            self.breaker.record_failure()
            return AttemptOutcome.fatal(UpstreamFatal(f"HTTP {status}", status))

        self.breaker.release()
        return AttemptOutcome.fatal(UpstreamFatal(f"HTTP {status}: {response.text[:200]}", status))

    async def scan_city(
        self,
        query_text: str,
        viewport: Viewport,
        options: Optional[ScanOptions] = None,
        depth: int = 0,
        counter: Optional[_CallCounter] = None,
    ) -> List[Dict[str, Any]]:
        """그리드 스캔 (깊이 0: 3×3, 재귀: 2×2)

        셀 결과가 recursion_threshold 이상이면 해당 셀을 다시 분할해 스캔합니다.
        API 호출 수는 재귀 전체에서 max_api_calls 로 제한됩니다.
        """
        options = options or ScanOptions()
        counter = counter if counter is not None else _CallCounter()
        size = 3 if depth == 0 else 2
        points = generate_grid(viewport, size)
        results: List[Dict[str, Any]] = []

        logger.info(f"[GRID_SCAN] depth {depth}/{options.max_depth}, grid {size}x{size}, query='{query_text}'")

        for index, point in enumerate(points):
            if counter.count >= options.max_api_calls:
                logger.info(f"[GRID_SCAN] API call cap reached ({options.max_api_calls})")
                break

            cell_places: List[Dict[str, Any]] = []
            try:
                cell_places = await self._scan_cell(query_text, point, options, counter)
                if len(cell_places) >= options.recursion_threshold and depth < options.max_depth:
                    logger.info(f"[GRID_SCAN] cell {index} hit {len(cell_places)} results, recursing to depth {depth + 1}")
                    sub_results = await self.scan_city(
                        query_text,
                        cell_viewport(viewport, size, point),
                        options,
                        depth + 1,
                        counter,
                    )
                    cell_places = cell_places + sub_results
            except (BudgetExceeded, BreakerOpen) as e:
                results.extend(cell_places)
                if not results:
                    raise
                logger.warning(f"[GRID_SCAN] stopping early with {len(results)} results: {e}")
                break
            except (UpstreamTransient, UpstreamFatal) as e:
                logger.error(f"[GRID_SCAN] cell {index} failed at depth {depth}: {e}")

            results.extend(cell_places)
            if options.on_cell:
                await options.on_cell(CellProgress(depth, index, len(points), len(cell_places), counter.count))

        return dedupe_places(results)

    async def _scan_cell(
        self,
        query_text: str,
        point: GridPoint,
        options: ScanOptions,
        counter: _CallCounter,
    ) -> List[Dict[str, Any]]:
        cell_places: List[Dict[str, Any]] = []
        token: Optional[str] = None
        pages = 0

        while True:
            page = await self.search_text(
                query_text,
                SearchOptions(
                    page_token=token,
                    location_bias=point.location_bias(),
                    user_id=options.user_id,
                    tier=options.tier,
                ),
            )
            counter.count += 1
            pages += 1
            cell_places.extend(page.places)
            token = page.next_page_token

            if options.page_delay_s > 0:
                await self._sleep(options.page_delay_s)
            if not token or pages >= options.max_pages_per_cell or counter.count >= options.max_api_calls:
                return cell_places
