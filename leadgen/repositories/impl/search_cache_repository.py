"""검색 캐시 리포지토리 - DB 기반 영속 캐시."""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Tuple

from sqlalchemy.orm import Session

from leadgen.core.logging import logger
from leadgen.core.exceptions import DatabaseException
from leadgen.repositories.models import SearchCache


class SearchCacheRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_unexpired(self, query_key: str, now: Optional[datetime] = None) -> Optional[Tuple[Dict[str, Any], datetime]]:
        """만료되지 않은 캐시와 만료 시각을 반환."""
        try:
            if not query_key:
                return None
            now = now or datetime.utcnow()
            row = (
                self.db.query(SearchCache)
                .filter(SearchCache.query_key == query_key)
                .filter(SearchCache.expires_at > now)
                .first()
            )
            if not row:
                return None
            return json.loads(row.results_json), row.expires_at
        except Exception as e:
            logger.warning(f"DB cache read error: {type(e).__name__}: {e}")
            return None

    def upsert(self, query_key: str, payload: Dict[str, Any], ttl_seconds: int) -> datetime:
        """캐시를 삽입/갱신하고 만료 시각을 반환."""
        try:
            results_json = json.dumps(payload, ensure_ascii=False)
            expires_at = datetime.utcnow() + timedelta(seconds=max(1, int(ttl_seconds)))

            row = self.db.query(SearchCache).filter(SearchCache.query_key == query_key).first()
            if row:
                row.results_json = results_json
                row.expires_at = expires_at
            else:
                row = SearchCache(query_key=query_key, results_json=results_json, expires_at=expires_at)
                self.db.add(row)

            self.db.commit()
            return expires_at
        except Exception as e:
            self.db.rollback()
            logger.error(f"DB cache write error: {type(e).__name__}: {e}")
            raise DatabaseException(f"Failed to write search cache: {e}")

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """만료된 캐시 행 삭제 (정리 스케줄러용)."""
        try:
            now = now or datetime.utcnow()
            deleted = (
                self.db.query(SearchCache)
                .filter(SearchCache.expires_at <= now)
                .delete(synchronize_session=False)
            )
            self.db.commit()
            return int(deleted or 0)
        except Exception as e:
            self.db.rollback()
            logger.error(f"DB cache purge error: {type(e).__name__}: {e}")
            raise DatabaseException(f"Failed to purge search cache: {e}")
