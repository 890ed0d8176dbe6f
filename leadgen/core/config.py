"""설정 관리 - 환경 변수 로드 및 검증"""
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """애플리케이션 설정"""

    # 데이터베이스
    database_url: str = "sqlite:///./leadgen.db"

    # Redis (Hot Cache / 예산 카운터 / inflight 등록 / Celery 브로커 공용)
    redis_url: str = "redis://localhost:6379/0"

    # 2단 캐시 TTL
    # - hot_cache_ttl: Redis 결과 캐시 (6시간)
    # - durable_cache_ttl: DB 영속 캐시 (30일)
    hot_cache_ttl: int = 21600
    durable_cache_ttl: int = 2592000

    # Deep search 전체 결과 목록 보관 기간 (페이지네이션용, 30일)
    deep_list_ttl: int = 2592000

    # inflight 등록 TTL: 워커가 정리 없이 죽어도 영구 잠금되지 않도록
    inflight_ttl_seconds: int = 300

    # 작업 상태 보관 기간
    job_ttl_seconds: int = 3600

    # 페이지 크기
    standard_page_size: int = 20
    deep_search_page_size: int = 60

    # 크레딧 가격표
    credit_cost_search: int = 1
    credit_cost_deep_search: int = 15
    credit_cost_page_load_free: int = 2
    credit_cost_page_load: int = 1

    # Places API (업스트림)
    places_api_url: str = "https://places.googleapis.com/v1/places:searchText"
    places_api_keys: str = ""
    places_language_code: str = "en"
    places_mock: bool = False
    places_fetch_timeout_s: float = 10.0
    places_estimated_cost_per_call_usd: float = 0.017
    places_max_attempts: int = 3
    places_backoff_base_s: float = 1.0
    places_backoff_max_s: float = 4.0

    # 예산 상한 (USD, 0이면 비활성화)
    places_global_daily_budget_usd: float = 10.0
    places_global_monthly_budget_usd: float = 0.0
    places_user_daily_budget_free_usd: float = 0.5
    places_user_daily_budget_starter_usd: float = 2.0
    places_user_daily_budget_pro_usd: float = 10.0
    places_user_daily_budget_business_usd: float = 40.0
    places_user_monthly_budget_free_usd: float = 2.0
    places_user_monthly_budget_starter_usd: float = 10.0
    places_user_monthly_budget_pro_usd: float = 60.0
    places_user_monthly_budget_business_usd: float = 220.0
    budget_key_ttl_seconds: int = 60 * 60 * 24 * 45

    # 회로차단(CB)
    breaker_fail_threshold: int = 5
    breaker_open_seconds: float = 60.0
    breaker_half_open_successes: int = 1

    # 동시 호출 제한
    places_max_concurrency: int = 20
    inflight_limiter_wait_s: float = 5.0
    inflight_limiter_poll_s: float = 0.1
    inflight_limiter_ttl_seconds: int = 30

    # Deep search 그리드 스캔
    scan_max_pages_per_cell: int = 3
    scan_max_api_calls: int = 60
    scan_max_depth: int = 1
    scan_recursion_threshold: int = 60
    scan_page_delay_s: float = 0.5

    # Celery
    celery_broker_url: str = ""
    celery_result_backend: str = ""
    search_task_time_limit: int = 600

    # 만료 캐시 정리 스케줄러
    scheduler_enabled: bool = True
    cache_purge_interval_minutes: int = 60

    # 연락처 수집 (enrichment)
    crawler_user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    crawler_http_impersonate: str = "chrome110"
    crawler_http_max_clients: int = 20
    enrichment_timeout_s: float = 15.0

    # API
    api_title: str = "Lead Search Service"
    api_version: str = "1.0.0"
    api_description: str = "Cache-first, deduplicated place search with credit metering."
    cors_origins: list[str] = ["*"]

    # 로깅
    environment: str = "development"
    log_level: str = "INFO"
    quiet_loggers: list[str] = ["httpx", "httpcore", "celery", "apscheduler"]

    @field_validator(
        "hot_cache_ttl",
        "durable_cache_ttl",
        "deep_list_ttl",
        "inflight_ttl_seconds",
        "job_ttl_seconds",
        "budget_key_ttl_seconds",
    )
    @classmethod
    def validate_ttls(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("TTL values must be positive")
        return v

    @field_validator("standard_page_size", "deep_search_page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("page sizes must be positive")
        return v

    @field_validator("places_max_attempts", "breaker_fail_threshold", "places_max_concurrency")
    @classmethod
    def validate_positive_counts(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("attempt/threshold/concurrency values must be positive")
        return v

    @field_validator(
        "places_global_daily_budget_usd",
        "places_global_monthly_budget_usd",
        "places_user_daily_budget_free_usd",
        "places_user_daily_budget_starter_usd",
        "places_user_daily_budget_pro_usd",
        "places_user_daily_budget_business_usd",
        "places_user_monthly_budget_free_usd",
        "places_user_monthly_budget_starter_usd",
        "places_user_monthly_budget_pro_usd",
        "places_user_monthly_budget_business_usd",
    )
    @classmethod
    def validate_budgets(cls, v: float) -> float:
        if v < 0:
            raise ValueError("budgets must be >= 0 (0 disables the ceiling)")
        return v

    @field_validator("database_url", "redis_url")
    @classmethod
    def validate_required_urls(cls, v: str) -> str:
        if not v:
            raise ValueError("database_url and redis_url must not be empty")
        return v

    @property
    def api_keys(self) -> list[str]:
        """쉼표로 구분된 Places API 키 목록"""
        return [k.strip() for k in self.places_api_keys.split(",") if k.strip()]

    def user_daily_budget_for(self, tier: str | None) -> float:
        """플랜별 사용자 일일 예산 (모르는 플랜이면 0 = 비활성화)"""
        limits = {
            "FREE": self.places_user_daily_budget_free_usd,
            "STARTER": self.places_user_daily_budget_starter_usd,
            "PRO": self.places_user_daily_budget_pro_usd,
            "BUSINESS": self.places_user_daily_budget_business_usd,
        }
        return limits.get((tier or "").upper(), 0.0)

    def user_monthly_budget_for(self, tier: str | None) -> float:
        """플랜별 사용자 월간 예산 (모르는 플랜이면 0 = 비활성화)"""
        limits = {
            "FREE": self.places_user_monthly_budget_free_usd,
            "STARTER": self.places_user_monthly_budget_starter_usd,
            "PRO": self.places_user_monthly_budget_pro_usd,
            "BUSINESS": self.places_user_monthly_budget_business_usd,
        }
        return limits.get((tier or "").upper(), 0.0)

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
