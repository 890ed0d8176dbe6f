"""데이터베이스 모델"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, TIMESTAMP, func, Index, Text, DateTime, Float, ForeignKey
from leadgen.core.database import Base


class User(Base):
    """사용자 잔액 테이블

    credits는 credit_transactions 원장을 물질화한 값이며,
    차감/충전은 항상 원장 기록과 같은 트랜잭션에서 수행됩니다.
    """

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    credits = Column(Integer, nullable=False, default=0)
    subscription_tier = Column(String(20), nullable=False, default="FREE")
    created_at = Column(TIMESTAMP, server_default=func.now())

    def __repr__(self) -> str:
        return f"<User(id={self.id}, credits={self.credits}, tier={self.subscription_tier})>"


class CreditTransaction(Base):
    """크레딧 원장 (append-only, 수정/삭제 금지)"""

    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # 차감은 음수, 충전/환불은 양수
    type = Column(String(30), nullable=False)  # SEARCH, DEEP_SEARCH, PAGE_LOAD, REFUND
    description = Column(String(255), nullable=True)
    metadata_json = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("idx_credit_tx_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<CreditTransaction(user={self.user_id}, amount={self.amount}, type={self.type})>"


class SearchCache(Base):
    """영속 검색 캐시 테이블 (Hot Cache 미스 시 DB에서 재사용).

    - query_key: 전역 검색 캐시 키 (search:global:...)
    - results_json: CachedResult를 JSON으로 직렬화한 값
    - expires_at: 이 시각 이후에는 읽지 않음
    """

    __tablename__ = "search_cache"

    id = Column(Integer, primary_key=True, index=True)
    query_key = Column(String, nullable=False, unique=True, index=True)
    results_json = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<SearchCache(key={self.query_key}, expires_at={self.expires_at})>"


class SearchHistory(Base):
    """사용자별 검색 기록 (첫 페이지 검색만)"""

    __tablename__ = "search_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    city = Column(String(100), nullable=False)
    keyword = Column(String(100), nullable=False)
    deep_search = Column(String(5), nullable=False, default="false")
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<SearchHistory(user={self.user_id}, city={self.city}, keyword={self.keyword})>"


class Place(Base):
    """업스트림에서 받은 업체 정보 + 수집된 연락처"""

    __tablename__ = "places"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(String, nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    address = Column(String(512), nullable=True)
    rating = Column(Float, nullable=True)
    user_ratings_total = Column(Integer, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    website = Column(String(1024), nullable=True)
    phone = Column(String(64), nullable=True)
    types_json = Column(Text, nullable=True)

    # 연락처 수집 결과
    emails_json = Column(Text, nullable=True)
    phones_json = Column(Text, nullable=True)
    socials_json = Column(Text, nullable=True)
    scrape_status = Column(String(20), nullable=False, default="PENDING", index=True)  # PENDING, PROCESSING, COMPLETED, FAILED

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Place(provider_id={self.provider_id}, name={self.name[:30]})>"
