"""Budget Ledger - 업스트림(Places API) 지출 예산 관리

스코프 키에 UTC 기간이 들어가므로 날짜/월이 바뀌면 자동으로 새 카운터가 됩니다.
(별도 리셋 작업 없음, 지난 기간 키는 TTL로 만료)

    places:spend:global:day:YYYY-MM-DD
    places:spend:global:month:YYYY-MM
    places:spend:user:<id>:day:YYYY-MM-DD
    places:spend:user:<id>:month:YYYY-MM   (플랜별 월간 상한)

예약 방식 (reserve → 호출 → commit | rollback):
- reserve: INCRBYFLOAT 로 먼저 더하고, 이전 지출이 상한 이상이면 되돌리고 거절
- commit: 업스트림에 도달한 호출 (성공/실패 무관, 비용 발생)
- rollback: 업스트림에 도달하지 못한 호출

저장소 장애 시에는 프로세스 내 카운터로 대체합니다 (fail-open, WARNING 로그).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from leadgen.core.config import settings
from leadgen.core.exceptions import BudgetExceeded, CacheStoreUnavailable
from leadgen.core.logging import logger
from leadgen.services.impl.kv_store import KeyValueStore


@dataclass(frozen=True)
class BudgetScope:
    """예산 스코프 (이름, 기간이 포함된 저장소 키, 상한 USD; 0 = 비활성화)"""

    name: str
    key: str
    limit: float


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def budget_scopes(
    user_id: Optional[str] = None,
    tier: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[BudgetScope]:
    """호출 1건에 적용되는 예산 스코프 목록"""
    now = now or _utc_now()
    day = now.strftime("%Y-%m-%d")
    month = now.strftime("%Y-%m")

    scopes = [
        BudgetScope("global:day", f"places:spend:global:day:{day}", settings.places_global_daily_budget_usd),
        BudgetScope("global:month", f"places:spend:global:month:{month}", settings.places_global_monthly_budget_usd),
    ]
    if user_id:
        user_limit = settings.user_daily_budget_for(tier)
        if user_limit > 0:
            scopes.append(BudgetScope(f"user:{user_id}:day", f"places:spend:user:{user_id}:day:{day}", user_limit))
        monthly_limit = settings.user_monthly_budget_for(tier)
        if monthly_limit > 0:
            scopes.append(
                BudgetScope(f"user:{user_id}:month", f"places:spend:user:{user_id}:month:{month}", monthly_limit)
            )
    return scopes


class BudgetLedger:
    """스코프별 누적 지출 관리자"""

    def __init__(self, store: KeyValueStore, key_ttl_seconds: Optional[int] = None):
        self.store = store
        self.key_ttl_seconds = int(key_ttl_seconds or settings.budget_key_ttl_seconds)

        # 저장소 장애 시 대체 카운터 (프로세스 로컬)
        self._fallback: Dict[str, float] = {}
        self._fallback_lock = threading.Lock()

    def _fallback_add(self, key: str, amount: float) -> float:
        with self._fallback_lock:
            value = self._fallback.get(key, 0.0) + amount
            self._fallback[key] = value
            return value

    async def check_and_reserve(self, scope: BudgetScope, amount: float) -> bool:
        """원자적 예약. 이전 지출이 상한 이상이면 되돌리고 False."""
        try:
            total = await self.store.incrbyfloat(scope.key, amount)
            await self.store.expire(scope.key, self.key_ttl_seconds)
        except CacheStoreUnavailable as e:
            logger.warning(f"[BUDGET] store unavailable, using in-process counter for {scope.name}: {e}")
            total = self._fallback_add(scope.key, amount)
            if scope.limit > 0 and total - amount >= scope.limit:
                self._fallback_add(scope.key, -amount)
                return False
            return True

        prior = total - amount
        if scope.limit > 0 and prior >= scope.limit:
            try:
                await self.store.incrbyfloat(scope.key, -amount)
            except CacheStoreUnavailable as e:
                logger.warning(f"[BUDGET] failed to undo denied reservation on {scope.name}: {e}")
            logger.warning(f"[BUDGET] denied {scope.name}: spent=${prior:.3f} limit=${scope.limit}")
            return False
        return True

    async def commit(self, scope: BudgetScope, amount: float) -> None:
        """예약 확정 (비용 발생). 카운터는 이미 반영되어 있으므로 TTL만 갱신."""
        try:
            await self.store.expire(scope.key, self.key_ttl_seconds)
        except CacheStoreUnavailable as e:
            logger.warning(f"[BUDGET] commit TTL refresh skipped for {scope.name}: {e}")

    async def rollback(self, scope: BudgetScope, amount: float) -> None:
        """예약 취소 (업스트림 미도달)"""
        try:
            await self.store.incrbyfloat(scope.key, -amount)
        except CacheStoreUnavailable as e:
            logger.warning(f"[BUDGET] rollback on in-process counter for {scope.name}: {e}")
            self._fallback_add(scope.key, -amount)

    async def spent(self, scope: BudgetScope) -> float:
        try:
            raw = await self.store.get(scope.key)
        except CacheStoreUnavailable:
            with self._fallback_lock:
                return self._fallback.get(scope.key, 0.0)
        try:
            return float(raw) if raw else 0.0
        except ValueError:
            return 0.0

    async def reserve_all(self, scopes: List[BudgetScope], amount: float) -> "BudgetReservation":
        """모든 스코프 예약. 하나라도 거절되면 이미 잡은 예약을 되돌리고 BudgetExceeded."""
        reserved: List[BudgetScope] = []
        for scope in scopes:
            if await self.check_and_reserve(scope, amount):
                reserved.append(scope)
                continue

            for done in reserved:
                await self.rollback(done, amount)
            raise BudgetExceeded(scope.name, scope.limit, await self.spent(scope))

        return BudgetReservation(ledger=self, scopes=reserved, amount=amount)


@dataclass
class BudgetReservation:
    """reserve_all 결과 - commit 또는 rollback 중 정확히 한 번만 적용"""

    ledger: BudgetLedger
    scopes: List[BudgetScope]
    amount: float
    settled: bool = field(default=False)

    async def commit(self) -> None:
        if self.settled:
            return
        self.settled = True
        for scope in self.scopes:
            await self.ledger.commit(scope, self.amount)

    async def rollback(self) -> None:
        if self.settled:
            return
        self.settled = True
        for scope in self.scopes:
            await self.ledger.rollback(scope, self.amount)
