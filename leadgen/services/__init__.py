"""캐시/저장소 서비스 - export only."""

from .hot_cache import HotCache
from .impl import KeyValueStore, Publisher, RedisStore

__all__ = ["HotCache", "KeyValueStore", "Publisher", "RedisStore"]
