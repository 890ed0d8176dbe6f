"""Pydantic 스키마 정의 (검색 요청/응답)"""
from typing import Optional, List, Any, Dict
from pydantic import BaseModel, Field, field_validator
from datetime import datetime


class SearchRequest(BaseModel):
    """업체 검색 요청"""
    city: str = Field(..., min_length=2, max_length=50, description="도시명 (예: Istanbul)")
    keyword: str = Field(..., min_length=2, max_length=50, description="업종/검색어 (예: dentist)")
    deep_search: bool = Field(False, description="도시 전체 그리드 스캔 여부")
    page_token: Optional[str] = Field(None, max_length=1024, description="다음 페이지 토큰")

    @field_validator('city', 'keyword')
    @classmethod
    def validate_text(cls, v: str) -> str:
        """공백/제어문자 검증"""
        if not v or not v.strip():
            raise ValueError('공백만으로 구성될 수 없습니다')
        if len(v.strip()) < 2:
            raise ValueError('앞뒤 공백을 제외하고 2자 이상이어야 합니다')
        dangerous_chars = ['<', '>', '\\', '\0', '\n', '\r']
        for char in dangerous_chars:
            if char in v:
                raise ValueError(f'허용되지 않는 문자가 포함되어 있습니다: {char!r}')
        return v.strip()

    @field_validator('page_token')
    @classmethod
    def validate_page_token(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class PlaceItem(BaseModel):
    """업체 1건 (업스트림 필드 그대로 전달)"""
    place_id: Optional[str] = None
    name: Optional[str] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    formatted_address: Optional[str] = None
    formatted_phone_number: Optional[str] = None
    website: Optional[str] = None
    business_status: Optional[str] = None
    location: Optional[Dict[str, Any]] = None
    types: List[str] = Field(default_factory=list)

    model_config = {"extra": "allow"}


class SearchData(BaseModel):
    """캐시 결과 페이지"""
    places: List[PlaceItem] = Field(default_factory=list)
    next_page_token: Optional[str] = None
    fetched_at: Optional[str] = None
    expires_at: Optional[str] = None


class SearchResponse(BaseModel):
    """검색 응답

    - type=CACHED: data 에 결과
    - type=JOB: job_id (message="joined" 이면 기존 작업 합류)
    """
    type: str = Field(..., description="CACHED | JOB")
    data: Optional[SearchData] = None
    job_id: Optional[str] = None
    message: Optional[str] = None


class JobStatusResponse(BaseModel):
    """작업 상태 응답"""
    id: str
    status: str
    progress: int = Field(0, ge=0, le=100)
    cache_key: Optional[str] = None
    result: Optional[SearchData] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ErrorResponse(BaseModel):
    """에러 응답"""
    error_code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """헬스 체크 응답"""
    status: str
    redis: bool
    database: bool
    timestamp: datetime
    version: str
