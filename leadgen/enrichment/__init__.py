"""업체 웹사이트 연락처 수집 - export only."""

from .contact_parsing import ContactData, parse_contacts
from .scraper import ContactScraper, enrich_place

__all__ = ["ContactData", "ContactScraper", "enrich_place", "parse_contacts"]
