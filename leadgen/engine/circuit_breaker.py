"""Circuit Breaker - 업스트림 장애 시 빠른 실패

- CLOSED: 정상. 연속 실패가 임계값에 도달하면 OPEN
- OPEN: 즉시 실패. open_duration 경과 후 첫 요청이 HALF_OPEN 프로브
- HALF_OPEN: 프로브는 한 번에 하나만 허용. 성공 → CLOSED, 실패 → OPEN

상태는 프로세스 로컬입니다 (워커 프로세스마다 별도).
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from leadgen.core.config import settings
from leadgen.core.exceptions import BreakerOpen
from leadgen.core.logging import logger


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class BreakerMetrics:
    successes: int = 0
    failures: int = 0
    rejections: int = 0
    opens: int = 0


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        fail_threshold: Optional[int] = None,
        open_duration_sec: Optional[float] = None,
        half_open_successes: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            name: 차단기 이름 (업스트림 리소스)
            fail_threshold: 회로 개방 임계값 (연속 실패 횟수)
            open_duration_sec: 개방 유지 시간 (초)
            half_open_successes: HALF_OPEN → CLOSED 에 필요한 성공 횟수
            clock: 단조 시계 (테스트에서 교체)
        """
        self.name = name
        self.fail_threshold = fail_threshold or settings.breaker_fail_threshold
        self.open_duration_sec = open_duration_sec if open_duration_sec is not None else settings.breaker_open_seconds
        self.half_open_successes = half_open_successes or settings.breaker_half_open_successes
        self._clock = clock

        self._state = BreakerState.CLOSED
        self._fail_count = 0
        self._half_open_ok = 0
        self._opened_at: float = 0.0
        self._probe_in_flight = False
        self._probe_started_at: float = 0.0
        self._lock = threading.Lock()
        self.metrics = BreakerMetrics()

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._fail_count

    def remaining_open_time(self) -> float:
        if self._state != BreakerState.OPEN:
            return 0.0
        return max(0.0, self._opened_at + self.open_duration_sec - self._clock())

    def allow(self) -> None:
        """호출 허용 여부 확인. 허용되지 않으면 BreakerOpen."""
        with self._lock:
            if self._state == BreakerState.CLOSED:
                return

            if self._state == BreakerState.OPEN:
                if self._clock() - self._opened_at < self.open_duration_sec:
                    self.metrics.rejections += 1
                    raise BreakerOpen(self.name, self.remaining_open_time())
                self._state = BreakerState.HALF_OPEN
                self._half_open_ok = 0
                self._probe_in_flight = False
                logger.info(f"[BREAKER] {self.name} HALF_OPEN (probing)")

            # HALF_OPEN: 동시에 하나의 프로브만. 결과 보고 없이 open_duration 이 지난 프로브는 버려진 것으로 봄
            if self._probe_in_flight:
                if self._clock() - self._probe_started_at < self.open_duration_sec:
                    self.metrics.rejections += 1
                    raise BreakerOpen(self.name, 0.0)
                logger.warning(f"[BREAKER] {self.name} probe never reported back, granting a new probe")
            self._probe_in_flight = True
            self._probe_started_at = self._clock()

    def record_success(self) -> None:
        with self._lock:
            self.metrics.successes += 1
            self._fail_count = 0
            if self._state == BreakerState.HALF_OPEN:
                self._probe_in_flight = False
                self._half_open_ok += 1
                if self._half_open_ok >= self.half_open_successes:
                    self._state = BreakerState.CLOSED
                    logger.info(f"[BREAKER] {self.name} CLOSED (probe succeeded)")

    def record_failure(self) -> None:
        with self._lock:
            self.metrics.failures += 1
            if self._state == BreakerState.HALF_OPEN:
                self._open()
                logger.warning(f"[BREAKER] {self.name} re-OPEN (probe failed)")
                return

            self._fail_count += 1
            if self._state == BreakerState.CLOSED and self._fail_count >= self.fail_threshold:
                self._open()
                logger.warning(
                    f"[BREAKER] {self.name} OPEN (fail_count={self._fail_count} >= {self.fail_threshold}), "
                    f"blocked for {self.open_duration_sec}s"
                )

    def release(self) -> None:
        """결과 판정 없이 프로브 슬롯 반환 (업스트림 미도달, 4xx 등)"""
        with self._lock:
            if self._state == BreakerState.HALF_OPEN:
                self._probe_in_flight = False

    def reset(self) -> None:
        with self._lock:
            self._state = BreakerState.CLOSED
            self._fail_count = 0
            self._half_open_ok = 0
            self._opened_at = 0.0
            self._probe_in_flight = False

    def _open(self) -> None:
        self._state = BreakerState.OPEN
        self._opened_at = self._clock()
        self._probe_in_flight = False
        self._half_open_ok = 0
        self.metrics.opens += 1

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker({self.name}, {self._state.value.upper()}, "
            f"fail_count={self._fail_count}/{self.fail_threshold}, open_time={self.remaining_open_time():.1f}s)"
        )


_registry: Dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def get_breaker(name: str) -> CircuitBreaker:
    """이름별 프로세스 로컬 차단기"""
    with _registry_lock:
        breaker = _registry.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name)
            _registry[name] = breaker
        return breaker


def reset_breakers() -> None:
    with _registry_lock:
        _registry.clear()
