"""검색 캐시 키 생성

키 문법은 DB에 저장된 영속 캐시 행이 그대로 참조하므로 절대 바꾸지 않습니다.

    search:global:<city>:<keyword>:<std|deep>:<p1|tok:<hash16>|deep:<offset>>

- 첫 페이지는 항상 ``p1`` → 같은 첫 페이지 요청끼리 의도적으로 충돌 (중복 제거 지점)
- 업스트림 페이지 토큰은 SHA-256 앞 16자
- ``deep:`` 접두사 토큰은 워커가 오프셋을 다시 읽어야 하므로 그대로 통과
"""

from typing import Optional

from leadgen.core.exceptions import InvalidPageToken
from leadgen.utils.hash_utils import short_hash

DEEP_TOKEN_PREFIX = "deep:"
FIRST_PAGE_PART = "p1"


def normalize_search_input(value: Optional[str]) -> str:
    """앞뒤 공백 제거 + 소문자화 (None → 빈 문자열)"""
    return (value or "").strip().lower()


def is_deep_token(page_token: Optional[str]) -> bool:
    return bool(page_token) and page_token.startswith(DEEP_TOKEN_PREFIX)


def build_search_cache_key(
    normalized_city: str,
    normalized_keyword: str,
    deep_search: bool,
    page_token: Optional[str] = None,
) -> str:
    """정규화된 입력으로 전역 검색 캐시 키 생성 (순수 함수)"""
    is_deep = bool(deep_search) or is_deep_token(page_token)
    mode = "deep" if is_deep else "std"

    if not page_token:
        page_part = FIRST_PAGE_PART
    elif is_deep_token(page_token):
        page_part = page_token
    else:
        page_part = f"tok:{short_hash(page_token)}"

    return f"search:global:{normalized_city}:{normalized_keyword}:{mode}:{page_part}"


def build_deep_list_key(normalized_city: str, normalized_keyword: str) -> str:
    """Deep search 전체 결과 목록 저장 키"""
    return f"search:list:data:global:{normalized_city}:{normalized_keyword}"


def build_inflight_key(cache_key: str) -> str:
    """진행 중 작업 등록 키"""
    return f"inflight:{cache_key}"


def build_job_key(job_id: str) -> str:
    return f"job:{job_id}"


def build_updates_channel(job_id: str) -> str:
    """작업 진행 상황 pub/sub 채널"""
    return f"search:updates:{job_id}"


def parse_deep_offset(page_token: str) -> int:
    """``deep:<n>`` 토큰에서 오프셋 추출

    Raises:
        InvalidPageToken: 접두사가 없거나 숫자가 아니거나 음수인 경우
    """
    if not is_deep_token(page_token):
        raise InvalidPageToken(page_token or "")
    raw = page_token[len(DEEP_TOKEN_PREFIX):]
    if not raw.isdigit():
        raise InvalidPageToken(page_token)
    return int(raw)


def build_deep_token(offset: int) -> str:
    return f"{DEEP_TOKEN_PREFIX}{int(offset)}"
