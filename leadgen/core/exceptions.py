"""커스텀 예외 정의 (Structured Exception Hierarchy)

사용자에게 노출되는 예외는 모두 고정된 error_code를 가지며,
API 계층은 이 코드로 "크레딧 부족" / "시스템 과부하" / "잠시 후 재시도"를 구분합니다.
"""
from typing import Any, Optional


# 기본 예외 클래스
class LeadGenException(Exception):
    """기본 예외 클래스 - 모든 커스텀 예외의 부모"""
    def __init__(self, message: str, error_code: str = "UNKNOWN_ERROR", details: Optional[dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# 업스트림(Places API) 게이트 관련 예외
class BudgetExceeded(LeadGenException):
    """예산 상한 초과 - 업스트림 호출 전에 차단됨"""
    def __init__(self, scope: str, limit: float, spent: Optional[float] = None, details: Optional[dict[str, Any]] = None):
        message = f"Places API budget exceeded for scope '{scope}' (limit: ${limit})"
        super().__init__(message, "BUDGET_EXCEEDED",
                         details or {"scope": scope, "limit": limit, "spent": spent})


class BreakerOpen(LeadGenException):
    """회로 개방 상태 - 업스트림 호출 없이 즉시 실패"""
    def __init__(self, name: str, retry_after_s: float = 0.0, details: Optional[dict[str, Any]] = None):
        message = f"Circuit '{name}' is open, retry in {retry_after_s:.1f}s"
        super().__init__(message, "BREAKER_OPEN",
                         details or {"breaker": name, "retry_after_s": round(retry_after_s, 1)})


class UpstreamTransient(LeadGenException):
    """재시도 가능한 업스트림 오류 (타임아웃, 5xx, 429)"""
    def __init__(self, reason: str, status_code: Optional[int] = None, details: Optional[dict[str, Any]] = None):
        message = f"Upstream temporarily unavailable: {reason}"
        super().__init__(message, "UPSTREAM_TRANSIENT",
                         details or {"reason": reason, "status_code": status_code})
        self.status_code = status_code


class InflightLimitExceeded(UpstreamTransient):
    """동시 호출 한도 초과 (대기 시간 내 슬롯 확보 실패)"""
    def __init__(self, resource: str, limit: int, details: Optional[dict[str, Any]] = None):
        super().__init__(
            f"too many concurrent calls for '{resource}' (limit: {limit})",
            details=details or {"resource": resource, "limit": limit},
        )
        self.error_code = "INFLIGHT_LIMIT"


class UpstreamFatal(LeadGenException):
    """재시도 불가 업스트림 오류 (잘못된 요청, 인증 실패 등)"""
    def __init__(self, reason: str, status_code: Optional[int] = None, details: Optional[dict[str, Any]] = None):
        message = f"Upstream rejected the request: {reason}"
        super().__init__(message, "UPSTREAM_FATAL",
                         details or {"reason": reason, "status_code": status_code})
        self.status_code = status_code


# 크레딧/작업 관련 예외
class InsufficientCredits(LeadGenException):
    """크레딧 잔액 부족"""
    def __init__(self, user_id: str, required: int, details: Optional[dict[str, Any]] = None):
        message = f"Insufficient credits: {required} credits required"
        super().__init__(message, "INSUFFICIENT_CREDITS",
                         details or {"user_id": user_id, "required": required})


class DuplicateDispatch(LeadGenException):
    """동일 키에 대한 중복 디스패치 (내부 불변식 위반 - 발생하면 버그)"""
    def __init__(self, cache_key: str, details: Optional[dict[str, Any]] = None):
        message = f"Duplicate dispatch detected for key: {cache_key}"
        super().__init__(message, "DUPLICATE_DISPATCH", details or {"cache_key": cache_key})


class DispatchFailed(LeadGenException):
    """크레딧 차감 후 작업 등록 실패"""
    def __init__(self, job_id: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Job {job_id} could not be dispatched: {reason}"
        super().__init__(message, "DISPATCH_FAILED", details or {"job_id": job_id, "reason": reason})


class SearchExpired(LeadGenException):
    """Deep search 결과 목록이 만료되어 페이지네이션 불가"""
    def __init__(self, cache_key: str, details: Optional[dict[str, Any]] = None):
        message = "Search results expired, please run the search again"
        super().__init__(message, "SEARCH_EXPIRED", details or {"cache_key": cache_key})


class JobNotFound(LeadGenException):
    """작업 기록 없음 (만료 또는 잘못된 ID)"""
    def __init__(self, job_id: str, details: Optional[dict[str, Any]] = None):
        message = f"Job not found: {job_id}"
        super().__init__(message, "JOB_NOT_FOUND", details or {"job_id": job_id})


class JobStateError(LeadGenException):
    """종료된 작업의 상태 변경 시도"""
    def __init__(self, job_id: str, current: str, requested: str, details: Optional[dict[str, Any]] = None):
        message = f"Job {job_id} is already {current}, cannot move to {requested}"
        super().__init__(message, "JOB_STATE_ERROR",
                         details or {"job_id": job_id, "current": current, "requested": requested})


# 캐시/저장소 관련 예외
class CacheStoreUnavailable(LeadGenException):
    """키-값 저장소(Redis) 사용 불가 - 가능하면 미스로 취급하고 계속 진행"""
    def __init__(self, operation: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Cache store unavailable during '{operation}': {reason}"
        super().__init__(message, "CACHE_STORE_UNAVAILABLE",
                         details or {"operation": operation, "reason": reason})


# 데이터베이스 관련 예외
class DatabaseException(LeadGenException):
    """데이터베이스 관련 예외"""
    def __init__(self, message: str, error_code: str = "DB_ERROR", details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code or "DB_ERROR", details)


# 유효성 검증 관련 예외
class ValidationException(LeadGenException):
    """유효성 검증 예외"""
    def __init__(self, field: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Validation failed for '{field}': {reason}"
        super().__init__(message, "VALIDATION_ERROR",
                         details or {"field": field, "reason": reason})


class InvalidPageToken(ValidationException):
    """해석할 수 없는 페이지 토큰"""
    def __init__(self, token: str, details: Optional[dict[str, Any]] = None):
        super().__init__("page_token", f"malformed token: {token[:40]}", details)
