"""Engine Layer - 검색 요청 통합 및 업스트림 보호

- SearchOrchestrator: 캐시 확인 / 중복 요청 합류 / 크레딧 차감 / 작업 디스패치
- BudgetLedger: 업스트림 지출 예산 (일/월, 전역/사용자)
- CircuitBreaker: 업스트림 장애 시 빠른 실패
- InflightLimiter: 동시 업스트림 호출 제한
- JobStore: 작업 상태 저장소
"""

from .budget import BudgetLedger, BudgetReservation, BudgetScope, budget_scopes
from .circuit_breaker import BreakerState, CircuitBreaker, get_breaker
from .inflight_limiter import InflightLimiter
from .job_store import JobQueue, JobRecord, JobStatus, JobStore
from .orchestrator import SearchOrchestrator, release_registration
from .result import CachedResult, OutcomeType, RequestContext, SearchOutcome, SearchQuery

__all__ = [
    "SearchOrchestrator",
    "release_registration",
    "BudgetLedger",
    "BudgetReservation",
    "BudgetScope",
    "budget_scopes",
    "BreakerState",
    "CircuitBreaker",
    "get_breaker",
    "InflightLimiter",
    "JobQueue",
    "JobRecord",
    "JobStatus",
    "JobStore",
    "CachedResult",
    "OutcomeType",
    "RequestContext",
    "SearchOutcome",
    "SearchQuery",
]
