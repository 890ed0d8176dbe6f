"""업체(Place) 리포지토리 - 검색 결과 저장 및 연락처 수집 상태 관리."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from leadgen.core.logging import logger
from leadgen.core.exceptions import DatabaseException
from leadgen.repositories.models import Place

SCRAPE_PENDING = "PENDING"
SCRAPE_PROCESSING = "PROCESSING"
SCRAPE_COMPLETED = "COMPLETED"
SCRAPE_FAILED = "FAILED"


def _dumps(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


class PlaceRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_provider_id(self, provider_id: str) -> Optional[Place]:
        return self.db.query(Place).filter(Place.provider_id == provider_id).first()

    def upsert_many(self, places: Iterable[Dict[str, Any]]) -> List[str]:
        """검색 결과 저장. 새로 저장되었거나 아직 수집 대기인 웹사이트 보유 업체 ID 반환."""
        pending: List[str] = []
        try:
            for item in places:
                provider_id = item.get("place_id")
                if not provider_id:
                    continue

                location = item.get("location") or {}
                row = self.get_by_provider_id(provider_id)
                if row is None:
                    row = Place(provider_id=provider_id, name=item.get("name") or "", scrape_status=SCRAPE_PENDING)
                    self.db.add(row)

                row.name = item.get("name") or row.name
                row.address = item.get("formatted_address")
                row.rating = item.get("rating")
                row.user_ratings_total = item.get("user_ratings_total")
                row.latitude = location.get("latitude")
                row.longitude = location.get("longitude")
                row.website = item.get("website")
                row.phone = item.get("formatted_phone_number")
                row.types_json = _dumps(item.get("types") or [])

                if row.website and row.scrape_status == SCRAPE_PENDING:
                    pending.append(provider_id)

            self.db.commit()
            return pending
        except Exception as e:
            self.db.rollback()
            logger.error(f"Place upsert failed: {type(e).__name__}: {e}")
            raise DatabaseException(f"Failed to save places: {e}")

    def claim_for_scrape(self, provider_id: str) -> Optional[Place]:
        """PENDING → PROCESSING 전환 (다른 워커가 이미 가져갔으면 None)"""
        try:
            updated = (
                self.db.query(Place)
                .filter(Place.provider_id == provider_id, Place.scrape_status == SCRAPE_PENDING)
                .update({Place.scrape_status: SCRAPE_PROCESSING}, synchronize_session=False)
            )
            self.db.commit()
            if not updated:
                return None
            return self.get_by_provider_id(provider_id)
        except Exception as e:
            self.db.rollback()
            raise DatabaseException(f"Failed to claim place for scraping: {e}")

    def save_contacts(
        self,
        provider_id: str,
        emails: List[str],
        phones: List[str],
        socials: Dict[str, str],
        status: str = SCRAPE_COMPLETED,
    ) -> None:
        try:
            row = self.get_by_provider_id(provider_id)
            if row is None:
                return
            row.emails_json = _dumps(emails)
            row.phones_json = _dumps(phones)
            row.socials_json = _dumps(socials)
            row.scrape_status = status
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            raise DatabaseException(f"Failed to save contacts: {e}")

    def mark_status(self, provider_id: str, status: str) -> None:
        try:
            self.db.query(Place).filter(Place.provider_id == provider_id).update(
                {Place.scrape_status: status}, synchronize_session=False
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            raise DatabaseException(f"Failed to update scrape status: {e}")
