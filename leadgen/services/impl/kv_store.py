"""키-값 저장소 / Publisher 추상화

엔진 구성요소(예산 원장, inflight 등록, 작업 상태, 동시 호출 제한)는 모두
KeyValueStore 프로토콜만 의존합니다. 운영에서는 Redis(asyncio), 테스트에서는
인메모리 구현을 주입합니다.

모든 변경은 저장소의 원자 연산(SET NX, INCR, INCRBYFLOAT, Lua compare-and-delete)
으로만 수행하며, 애플리케이션에서 read-modify-write 하지 않습니다.
"""

from __future__ import annotations

from typing import Optional, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from leadgen.core.config import settings
from leadgen.core.exceptions import CacheStoreUnavailable
from leadgen.core.logging import logger


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ex: Optional[int] = None, nx: bool = False) -> bool: ...

    async def delete(self, key: str) -> int: ...

    async def delete_if_equals(self, key: str, expected: str) -> bool: ...

    async def incr(self, key: str) -> int: ...

    async def decr(self, key: str) -> int: ...

    async def incrbyfloat(self, key: str, amount: float) -> float: ...

    async def expire(self, key: str, seconds: int) -> bool: ...

    async def ttl(self, key: str) -> int: ...

    async def ping(self) -> bool: ...


class Publisher(Protocol):
    async def publish(self, channel: str, message: str) -> int: ...


# 값이 기대값과 같을 때만 삭제 (소유자 확인 후 해제)
_DELETE_IF_EQUALS = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class RedisStore:
    """redis.asyncio 기반 KeyValueStore / Publisher 구현

    Redis 오류는 모두 CacheStoreUnavailable 로 변환됩니다.
    호출자가 "미스로 취급" 할지 실패시킬지 결정합니다.
    """

    def __init__(self, client: Optional[Redis] = None, url: Optional[str] = None):
        self.client = client or Redis.from_url(
            url or settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        self._delete_if_equals = self.client.register_script(_DELETE_IF_EQUALS)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(key)
        except (RedisError, OSError) as e:
            raise CacheStoreUnavailable("get", str(e))

    async def set(self, key: str, value: str, ex: Optional[int] = None, nx: bool = False) -> bool:
        try:
            result = await self.client.set(key, value, ex=ex, nx=nx)
            return bool(result)
        except (RedisError, OSError) as e:
            raise CacheStoreUnavailable("set", str(e))

    async def delete(self, key: str) -> int:
        try:
            return int(await self.client.delete(key))
        except (RedisError, OSError) as e:
            raise CacheStoreUnavailable("delete", str(e))

    async def delete_if_equals(self, key: str, expected: str) -> bool:
        try:
            return bool(await self._delete_if_equals(keys=[key], args=[expected]))
        except (RedisError, OSError) as e:
            raise CacheStoreUnavailable("delete_if_equals", str(e))

    async def incr(self, key: str) -> int:
        try:
            return int(await self.client.incr(key))
        except (RedisError, OSError) as e:
            raise CacheStoreUnavailable("incr", str(e))

    async def decr(self, key: str) -> int:
        try:
            return int(await self.client.decr(key))
        except (RedisError, OSError) as e:
            raise CacheStoreUnavailable("decr", str(e))

    async def incrbyfloat(self, key: str, amount: float) -> float:
        try:
            return float(await self.client.incrbyfloat(key, amount))
        except (RedisError, OSError) as e:
            raise CacheStoreUnavailable("incrbyfloat", str(e))

    async def expire(self, key: str, seconds: int) -> bool:
        try:
            return bool(await self.client.expire(key, seconds))
        except (RedisError, OSError) as e:
            raise CacheStoreUnavailable("expire", str(e))

    async def ttl(self, key: str) -> int:
        try:
            return int(await self.client.ttl(key))
        except (RedisError, OSError) as e:
            raise CacheStoreUnavailable("ttl", str(e))

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError) as e:
            raise CacheStoreUnavailable("ping", str(e))

    async def publish(self, channel: str, message: str) -> int:
        try:
            return int(await self.client.publish(channel, message))
        except (RedisError, OSError) as e:
            raise CacheStoreUnavailable("publish", str(e))

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Redis close error: {e}")
