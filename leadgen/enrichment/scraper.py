"""업체 연락처 수집기

홈페이지에서 이메일/전화/SNS 링크를 추출하고, 이메일이 없으면
같은 도메인의 문의(contact/about) 페이지를 한 번 더 방문합니다.
"""

from __future__ import annotations

from typing import Callable, ContextManager, Optional

from sqlalchemy.orm import Session

from leadgen.core.config import settings
from leadgen.core.database import get_db_context
from leadgen.core.exceptions import DatabaseException
from leadgen.core.logging import logger
from leadgen.enrichment.contact_parsing import ContactData, find_contact_link, normalize_website, parse_contacts
from leadgen.enrichment.http_client import SharedHttpClient
from leadgen.repositories.impl.place_repository import (
    SCRAPE_COMPLETED,
    SCRAPE_FAILED,
    PlaceRepository,
)


class ContactScraper:
    def __init__(self, http_client: SharedHttpClient, timeout_s: Optional[float] = None):
        self.http = http_client
        self.timeout_s = timeout_s or settings.enrichment_timeout_s

    async def scrape(self, website: str) -> Optional[ContactData]:
        """수집 결과. 홈페이지를 가져오지 못하면 None."""
        url = normalize_website(website)
        if not url:
            return None

        fetched = await self.http.get_text(url, timeout_s=self.timeout_s)
        if fetched is None:
            return None
        status, html = fetched
        if status >= 400 or not html:
            logger.info(f"[SCRAPER] {url} returned HTTP {status}")
            return None

        data, links = parse_contacts(html, url)

        if not data.emails:
            contact_url = find_contact_link(links, url)
            if contact_url:
                logger.debug(f"[SCRAPER] no email on homepage, visiting {contact_url}")
                sub = await self.http.get_text(contact_url, timeout_s=self.timeout_s)
                if sub is not None and sub[0] < 400 and sub[1]:
                    sub_data, _ = parse_contacts(sub[1], contact_url)
                    data.merge(sub_data)

        logger.info(
            f"[SCRAPER] {url}: emails={len(data.emails)} phones={len(data.phones)} socials={len(data.socials)}"
        )
        return data


async def enrich_place(
    provider_id: str,
    scraper: ContactScraper,
    session_factory: Callable[[], ContextManager[Session]] = get_db_context,
) -> Optional[str]:
    """업체 1건 연락처 수집 (PENDING → PROCESSING → COMPLETED | FAILED)

    Returns:
        최종 scrape_status, 다른 워커가 이미 처리 중이면 None
    """
    with session_factory() as db:
        place = PlaceRepository(db).claim_for_scrape(provider_id)
        website = place.website if place else None
    if place is None:
        return None

    if not website:
        with session_factory() as db:
            PlaceRepository(db).mark_status(provider_id, SCRAPE_COMPLETED)
        return SCRAPE_COMPLETED

    try:
        data = await scraper.scrape(website)
    except Exception as e:
        logger.error(f"[SCRAPER] {provider_id} failed: {type(e).__name__}: {e}")
        data = None

    status = SCRAPE_COMPLETED if data is not None else SCRAPE_FAILED
    data = data or ContactData()
    try:
        with session_factory() as db:
            PlaceRepository(db).save_contacts(provider_id, data.emails, data.phones, data.socials, status=status)
    except DatabaseException as e:
        logger.error(f"[SCRAPER] could not save contacts for {provider_id}: {e}")
        raise
    return status
