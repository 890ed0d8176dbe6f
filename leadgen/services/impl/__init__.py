"""Services implementation package."""

from .kv_store import KeyValueStore, Publisher, RedisStore

__all__ = ["KeyValueStore", "Publisher", "RedisStore"]
