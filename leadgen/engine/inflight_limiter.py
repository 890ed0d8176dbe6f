"""Inflight Limiter - 리소스별 동시 업스트림 호출 수 제한

저장소의 INCR/DECR 카운터로 워커 프로세스 전체에 걸쳐 동시 호출을 셉니다.
카운터에는 안전 TTL을 걸어 두어, 프로세스가 DECR 없이 죽어도 슬롯이 영구히 새지 않습니다.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

from leadgen.core.config import settings
from leadgen.core.exceptions import CacheStoreUnavailable, InflightLimitExceeded
from leadgen.core.logging import logger
from leadgen.services.impl.kv_store import KeyValueStore


class InflightLimiter:
    def __init__(
        self,
        store: KeyValueStore,
        resource: str,
        limit: Optional[int] = None,
        ttl_seconds: Optional[int] = None,
        wait_s: Optional[float] = None,
        poll_s: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.resource = resource
        self.key = f"inflight-limit:{resource}"
        self.limit = int(limit or settings.places_max_concurrency)
        self.ttl_seconds = int(ttl_seconds or settings.inflight_limiter_ttl_seconds)
        self.wait_s = settings.inflight_limiter_wait_s if wait_s is None else wait_s
        self.poll_s = settings.inflight_limiter_poll_s if poll_s is None else poll_s
        self._sleep = sleep

    async def acquire(self) -> bool:
        """슬롯 확보. 대기 시간 내 확보 실패 시 InflightLimitExceeded.

        Returns:
            True 면 카운터에 반영된 슬롯 (release 필요),
            False 면 저장소 장애로 카운트 없이 통과 (fail-open)
        """
        deadline = time.monotonic() + self.wait_s
        while True:
            try:
                current = await self.store.incr(self.key)
            except CacheStoreUnavailable as e:
                logger.warning(f"[LIMITER] store unavailable, passing {self.resource} without a slot: {e}")
                return False

            # INCR 는 반영됨: 이후 실패와 무관하게 이 슬롯은 DECR 대상
            await self._refresh_ttl()

            if current <= self.limit:
                return True

            try:
                await self.store.decr(self.key)
            except CacheStoreUnavailable as e:
                logger.warning(f"[LIMITER] failed to give back slot for {self.resource}: {e}")

            if time.monotonic() >= deadline:
                logger.warning(f"[LIMITER] {self.resource} saturated ({self.limit} in flight)")
                raise InflightLimitExceeded(self.resource, self.limit)
            await self._sleep(self.poll_s)

    async def _refresh_ttl(self) -> None:
        try:
            await self.store.expire(self.key, self.ttl_seconds)
        except CacheStoreUnavailable as e:
            logger.warning(f"[LIMITER] TTL refresh failed for {self.resource}: {e}")

    async def release(self) -> None:
        try:
            remaining = await self.store.decr(self.key)
        except CacheStoreUnavailable as e:
            logger.warning(f"[LIMITER] release skipped for {self.resource}: {e}")
            return

        if remaining < 0:
            # TTL 만료 후 재생성된 카운터
            try:
                await self.store.set(self.key, "0", ex=self.ttl_seconds)
            except CacheStoreUnavailable as e:
                logger.warning(f"[LIMITER] counter reset failed for {self.resource}: {e}")

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        counted = await self.acquire()
        try:
            yield
        finally:
            if counted:
                await self.release()
