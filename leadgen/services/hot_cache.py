"""Hot Cache - 키-값 저장소 기반 검색 결과 캐시

저장소 장애는 요청 실패가 아니라 "미스"로 처리하고 WARNING만 남깁니다.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from leadgen.core.config import settings
from leadgen.core.exceptions import CacheStoreUnavailable
from leadgen.core.logging import logger
from leadgen.services.impl.kv_store import KeyValueStore


class HotCache:
    def __init__(self, store: KeyValueStore, ttl_seconds: Optional[int] = None):
        self.store = store
        self.ttl_seconds = int(ttl_seconds or settings.hot_cache_ttl)

    async def get(self, cache_key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.store.get(cache_key)
        except CacheStoreUnavailable as e:
            logger.warning(f"[HOT_CACHE] read degraded to miss: {e}")
            return None

        if not raw:
            return None
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"[HOT_CACHE] corrupt entry ignored ({cache_key}): {e}")
            return None
        return data if isinstance(data, dict) else None

    async def set(self, cache_key: str, payload: Dict[str, Any], ttl_seconds: Optional[int] = None) -> bool:
        """캐시 저장 (ttl_seconds 미지정 시 기본 hot TTL)"""
        ttl = int(ttl_seconds if ttl_seconds is not None else self.ttl_seconds)
        if ttl <= 0:
            return False
        try:
            value = json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"[HOT_CACHE] serialization failed ({cache_key}): {e}")
            return False
        try:
            await self.store.set(cache_key, value, ex=ttl)
            logger.debug(f"[HOT_CACHE] set {cache_key} ttl={ttl}s")
            return True
        except CacheStoreUnavailable as e:
            logger.warning(f"[HOT_CACHE] write skipped: {e}")
            return False
