"""Search Result - 요청/응답 표준 포맷

오케스트레이터와 워커, API가 공유하는 값 객체들입니다.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from leadgen.search.cache_key import (
    build_deep_list_key,
    build_search_cache_key,
    is_deep_token,
    normalize_search_input,
)


class OutcomeType(str, Enum):
    """검색 응답 유형"""

    CACHED = "CACHED"  # 캐시 결과 즉시 반환
    JOB = "JOB"  # 백그라운드 작업 핸들 반환 (신규 또는 합류)


JOINED_MESSAGE = "joined"


@dataclass(frozen=True)
class SearchQuery:
    """검색 요청 (생성 후 불변)

    city/keyword 원문은 그대로 두고, 키 생성 시 정규화된 값을 사용합니다.
    """

    city: str
    keyword: str
    deep_search: bool = False
    page_token: Optional[str] = None

    @property
    def normalized_city(self) -> str:
        return normalize_search_input(self.city)

    @property
    def normalized_keyword(self) -> str:
        return normalize_search_input(self.keyword)

    @property
    def is_pagination(self) -> bool:
        return bool(self.page_token)

    @property
    def is_deep_pagination(self) -> bool:
        return is_deep_token(self.page_token)

    @property
    def is_deep(self) -> bool:
        return bool(self.deep_search) or self.is_deep_pagination

    @property
    def cache_key(self) -> str:
        return build_search_cache_key(
            self.normalized_city,
            self.normalized_keyword,
            self.deep_search,
            self.page_token,
        )

    @property
    def deep_list_key(self) -> str:
        return build_deep_list_key(self.normalized_city, self.normalized_keyword)

    @property
    def text_query(self) -> str:
        """업스트림 텍스트 검색어 ("<keyword> in <city>")"""
        return f"{self.keyword.strip()} in {self.city.strip()}"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "city": self.city,
            "keyword": self.keyword,
            "deep_search": bool(self.deep_search),
            "page_token": self.page_token,
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "SearchQuery":
        return cls(
            city=str(data.get("city") or ""),
            keyword=str(data.get("keyword") or ""),
            deep_search=bool(data.get("deep_search")),
            page_token=data.get("page_token") or None,
        )


@dataclass(frozen=True)
class RequestContext:
    """요청 컨텍스트 - 호출 체인 전체에 명시적으로 전달"""

    user_id: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class CachedResult:
    """캐시에 저장되는 검색 결과

    job_id나 사용자별 필드는 절대 포함하지 않습니다 (전역 캐시).
    """

    places: List[Dict[str, Any]] = field(default_factory=list)
    next_page_token: Optional[str] = None
    fetched_at: Optional[str] = None
    expires_at: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "places": list(self.places),
            "next_page_token": self.next_page_token,
            "fetched_at": self.fetched_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CachedResult":
        """저장된 payload 복원 (알 수 없는 필드는 버림)"""
        places = data.get("places")
        return cls(
            places=list(places) if isinstance(places, list) else [],
            next_page_token=data.get("next_page_token") or None,
            fetched_at=data.get("fetched_at"),
            expires_at=data.get("expires_at"),
        )

    @classmethod
    def build(cls, places: List[Dict[str, Any]], next_page_token: Optional[str], expires_at: datetime) -> "CachedResult":
        return cls(
            places=places,
            next_page_token=next_page_token,
            fetched_at=datetime.utcnow().isoformat(),
            expires_at=expires_at.isoformat(),
        )


@dataclass
class SearchOutcome:
    """오케스트레이터 반환값

    - CACHED: data 에 CachedResult payload
    - JOB: job_id, message (None = 신규 작업, "joined" = 기존 작업 합류)
    """

    type: OutcomeType
    data: Optional[Dict[str, Any]] = None
    job_id: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_cached(self) -> bool:
        return self.type == OutcomeType.CACHED

    @property
    def is_joined(self) -> bool:
        return self.type == OutcomeType.JOB and self.message == JOINED_MESSAGE

    @classmethod
    def cached(cls, data: Dict[str, Any]) -> "SearchOutcome":
        return cls(type=OutcomeType.CACHED, data=data)

    @classmethod
    def new_job(cls, job_id: str) -> "SearchOutcome":
        return cls(type=OutcomeType.JOB, job_id=job_id)

    @classmethod
    def joined(cls, job_id: str) -> "SearchOutcome":
        return cls(type=OutcomeType.JOB, job_id=job_id, message=JOINED_MESSAGE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "data": self.data,
            "job_id": self.job_id,
            "message": self.message,
        }
