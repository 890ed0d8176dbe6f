"""업체 웹사이트 연락처 파싱 유틸.

네트워크(fetch)와 분리된 순수 파싱 로직: 이메일, 전화번호, SNS 링크, 문의 페이지 링크.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

from selectolax.parser import HTMLParser

EMAIL_REGEX = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PHONE_REGEX = re.compile(r"(?:\+?[0-9]{1,4}[\s-]?)?\(?[0-9]{3}\)?[\s-]?[0-9]{3}[\s-]?[0-9]{2,4}")

SOCIAL_PATTERNS = {
    "facebook": re.compile(r"facebook\.com/[a-zA-Z0-9.]+", re.I),
    "instagram": re.compile(r"instagram\.com/[a-zA-Z0-9._]+", re.I),
    "twitter": re.compile(r"twitter\.com/[a-zA-Z0-9_]+", re.I),
    "linkedin": re.compile(r"linkedin\.com/(?:in|company)/[a-zA-Z0-9\-_%]+", re.I),
    "youtube": re.compile(r"youtube\.com/(?:channel|user|c)/[a-zA-Z0-9\-_]+", re.I),
}

# 이미지/에셋 파일명이 이메일처럼 잡히는 경우
_JUNK_EXTENSIONS = (
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".bmp", ".tiff", ".ico",
    ".css", ".js", ".woff", ".woff2", ".mp4", ".mp3", ".wav", ".json", ".xml",
)
_JUNK_DOMAINS = (
    "sentry.io",
    "sentry.wixpress.com",
    "sentry-next.wixpress.com",
    "example.com",
    "domain.com",
    "email.com",
    "yoursite.com",
)
# JS/JSON 이스케이프 잔여물
_JUNK_PREFIXES = ("u002f", "u003e", "ue00", "name@")
_NUMERIC_LOCAL = re.compile(r"^[0-9]+@")

CONTACT_KEYWORDS = ("contact", "about", "iletişim", "hakkımızda", "bize ulaşın", "künye", "문의", "연락처")

PHONE_MIN_LEN = 8
PHONE_MAX_LEN = 20


@dataclass
class ContactData:
    emails: List[str] = field(default_factory=list)
    phones: List[str] = field(default_factory=list)
    socials: Dict[str, str] = field(default_factory=dict)

    def merge(self, other: "ContactData") -> None:
        self.emails = _unique(self.emails + other.emails)
        self.phones = _unique(self.phones + other.phones)
        for name, url in other.socials.items():
            self.socials.setdefault(name, url)


def _unique(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


def is_junk_email(email: str) -> bool:
    if any(email.endswith(ext) for ext in _JUNK_EXTENSIONS):
        return True
    _, _, domain = email.partition("@")
    if not domain or any(junk in domain for junk in _JUNK_DOMAINS):
        return True
    if email.startswith(_JUNK_PREFIXES):
        return True
    return bool(_NUMERIC_LOCAL.match(email))


def extract_emails(html: str) -> List[str]:
    found = _unique([m.lower() for m in EMAIL_REGEX.findall(html or "")])
    return [e for e in found if not is_junk_email(e)]


def extract_phones(html: str) -> List[str]:
    text = HTMLParser(html).text(separator=" ") if html else ""
    found = _unique([m.strip() for m in PHONE_REGEX.findall(text)])
    return [p for p in found if PHONE_MIN_LEN <= len(p) <= PHONE_MAX_LEN]


def extract_links(html: str, base_url: str) -> List[Tuple[str, str]]:
    """(절대 URL, 링크 텍스트) 목록"""
    if not html:
        return []
    parser = HTMLParser(html)
    links: List[Tuple[str, str]] = []
    for node in parser.css("a[href]"):
        href = (node.attributes.get("href") or "").strip()
        if not href or href.startswith(("mailto:", "tel:", "javascript:", "#")):
            continue
        links.append((urljoin(base_url, href), (node.text() or "").strip()))
    return links


def extract_socials(links: List[Tuple[str, str]]) -> Dict[str, str]:
    socials: Dict[str, str] = {}
    for href, _ in links:
        for name, pattern in SOCIAL_PATTERNS.items():
            if pattern.search(href):
                socials[name] = href
    return socials


def find_contact_link(links: List[Tuple[str, str]], base_url: str) -> Optional[str]:
    """같은 도메인의 문의/소개 페이지 링크"""
    domain = urlparse(base_url).hostname or ""
    for href, text in links:
        lowered_href = href.lower()
        if (urlparse(href).hostname or "") != domain:
            continue
        if lowered_href.rstrip("/") == base_url.lower().rstrip("/"):
            continue
        lowered_text = text.lower()
        if any(k in lowered_href or k in lowered_text for k in CONTACT_KEYWORDS):
            return href
    return None


def parse_contacts(html: str, base_url: str) -> Tuple[ContactData, List[Tuple[str, str]]]:
    links = extract_links(html, base_url)
    data = ContactData(
        emails=extract_emails(html),
        phones=extract_phones(html),
        socials=extract_socials(links),
    )
    return data, links


def normalize_website(url: str) -> str:
    url = (url or "").strip()
    if url and not url.startswith(("http://", "https://")):
        url = "https://" + url
    return url
