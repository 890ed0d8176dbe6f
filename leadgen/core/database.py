"""데이터베이스 연결 및 세션 관리"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from contextlib import contextmanager
from typing import Any, Generator

from leadgen.core.config import settings
from leadgen.core.logging import logger

# SQLAlchemy Base
Base = declarative_base()


def _engine_kwargs(url: str) -> dict[str, Any]:
    """SQLite(로컬 개발)는 커넥션 풀 옵션을 받지 않으므로 분기"""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 5,
        "max_overflow": 10,
    }


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """데이터베이스 테이블 초기화"""
    # 모델 등록 (Base.metadata 채우기)
    from leadgen.repositories import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context Manager: DB 세션 제공"""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
