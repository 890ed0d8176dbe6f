"""전역 테스트 설정

역할:
- 테스트 환경 구성
- 공통 Fake 주입 (메모리 키-값 저장소, 작업 큐, SQLite 세션)
- 전역 상태 초기화 (회로차단기 레지스트리)

금지:
- 실제 Redis / Places API / 브로커 접속
"""

from __future__ import annotations

import asyncio
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


# 프로젝트 루트를 경로에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from leadgen.core.database import Base  # noqa: E402
from leadgen.core.exceptions import CacheStoreUnavailable  # noqa: E402
from leadgen.engine.circuit_breaker import reset_breakers  # noqa: E402
from leadgen.repositories import models  # noqa: E402,F401
from leadgen.repositories.models import User  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def test_env() -> None:
    """테스트 환경 변수 설정 (세션 전역)"""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["LOG_LEVEL"] = "INFO"


@pytest.fixture(autouse=True)
def _reset_breaker_registry():
    reset_breakers()
    yield
    reset_breakers()


class FakeKeyValueStore:
    """Redis 대용 메모리 저장소

    - 모든 연산 앞에서 한 번 양보(sleep(0))해 동시 요청이 실제로 교차하도록 함
    - 양보 이후의 본문은 한 덩어리로 실행되므로 각 연산은 Redis 명령처럼 원자적
    - TTL은 주입 가능한 시계(now) 기준, advance()로 시간 이동
    - fail=True 이면 모든 연산이 CacheStoreUnavailable
    """

    def __init__(self) -> None:
        self.now = 1_000.0
        self.fail = False
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self.published: List[Tuple[str, str]] = []

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def _enter(self, operation: str) -> None:
        await asyncio.sleep(0)
        if self.fail:
            raise CacheStoreUnavailable(operation, "fake store is down")

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self.now:
            del self._data[key]
            return None
        return value

    def _put(self, key: str, value: str, ex: Optional[float] = None) -> None:
        self._data[key] = (value, self.now + ex if ex else None)

    def _keep_ttl(self, key: str, value: str) -> None:
        entry = self._data.get(key)
        self._data[key] = (value, entry[1] if entry else None)

    def peek(self, key: str) -> Optional[str]:
        """동기 조회 (테스트 검증용)"""
        return self._live(key)

    async def get(self, key: str) -> Optional[str]:
        await self._enter("get")
        return self._live(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None, nx: bool = False) -> bool:
        await self._enter("set")
        if nx and self._live(key) is not None:
            return False
        self._put(key, str(value), ex)
        return True

    async def delete(self, key: str) -> int:
        await self._enter("delete")
        existed = self._live(key) is not None
        self._data.pop(key, None)
        return int(existed)

    async def delete_if_equals(self, key: str, expected: str) -> bool:
        await self._enter("delete_if_equals")
        if self._live(key) != expected:
            return False
        del self._data[key]
        return True

    async def incr(self, key: str) -> int:
        await self._enter("incr")
        value = int(self._live(key) or 0) + 1
        self._keep_ttl(key, str(value))
        return value

    async def decr(self, key: str) -> int:
        await self._enter("decr")
        value = int(self._live(key) or 0) - 1
        self._keep_ttl(key, str(value))
        return value

    async def incrbyfloat(self, key: str, amount: float) -> float:
        await self._enter("incrbyfloat")
        value = float(self._live(key) or 0.0) + float(amount)
        self._keep_ttl(key, repr(value))
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        await self._enter("expire")
        value = self._live(key)
        if value is None:
            return False
        self._put(key, value, seconds)
        return True

    async def ttl(self, key: str) -> int:
        await self._enter("ttl")
        if self._live(key) is None:
            return -2
        expires_at = self._data[key][1]
        return -1 if expires_at is None else int(expires_at - self.now)

    async def ping(self) -> bool:
        await self._enter("ping")
        return True

    async def publish(self, channel: str, message: str) -> int:
        await self._enter("publish")
        self.published.append((channel, message))
        return 0


class FakeJobQueue:
    """enqueue된 payload를 기록만 하는 작업 큐"""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.payloads: List[Dict[str, Any]] = []

    async def enqueue(self, payload: Dict[str, Any]) -> str:
        await asyncio.sleep(0)
        if self.error:
            raise self.error
        self.payloads.append(payload)
        return payload["job_id"]

    async def get_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        return None


@pytest.fixture
def fake_store() -> FakeKeyValueStore:
    return FakeKeyValueStore()


@pytest.fixture
def fake_queue() -> FakeJobQueue:
    return FakeJobQueue()


@pytest.fixture
def db_engine():
    """SQLite 메모리 DB (모든 세션이 같은 커넥션 공유)"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """get_db_context 와 같은 규약의 세션 컨텍스트 팩토리"""
    Session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    @contextmanager
    def _factory():
        db = Session()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    return _factory


@pytest.fixture
def seed_user(session_factory):
    """사용자 생성 헬퍼"""

    def _seed(user_id: str, credits: int = 100, tier: str = "FREE") -> None:
        with session_factory() as db:
            db.add(User(id=user_id, credits=credits, subscription_tier=tier))

    return _seed
