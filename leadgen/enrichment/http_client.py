"""공유 HTTP 클라이언트 (curl_cffi)

- 업체 웹사이트 수집 시 요청마다 AsyncSession을 만들면 TLS/커넥션 오버헤드가 커서
  프로세스 단위로 세션을 재사용합니다.
- 워커 태스크 종료 시 close()로 정리합니다.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

from curl_cffi.requests import AsyncSession

from leadgen.core.config import settings
from leadgen.core.logging import logger


class SharedHttpClient:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._session: Optional[AsyncSession] = None

    async def _ensure_session(self) -> AsyncSession:
        async with self._lock:
            if self._session is not None:
                return self._session
            self._session = AsyncSession(
                impersonate=settings.crawler_http_impersonate,
                headers=self.default_headers(),
                allow_redirects=True,
                max_clients=settings.crawler_http_max_clients,
                trust_env=False,
            )
            return self._session

    def default_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": settings.crawler_user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9,tr;q=0.8",
        }

    async def get_text(self, url: str, *, timeout_s: float) -> Optional[tuple[int, str]]:
        """(status, body) 또는 네트워크 실패 시 None"""
        sess = await self._ensure_session()
        try:
            resp = await sess.get(url, timeout=timeout_s, allow_redirects=True)
            status = getattr(resp, "status_code", 0) or 0
            text = getattr(resp, "text", "") or ""
            return status, text
        except Exception as e:
            logger.info(f"[HTTP_CLIENT] GET failed for {url}: {type(e).__name__}: {e}")
            return None

    async def close(self) -> None:
        async with self._lock:
            if self._session is None:
                return
            session, self._session = self._session, None
        try:
            await session.close()
        except Exception as e:
            logger.debug(f"[HTTP_CLIENT] close error ignored: {type(e).__name__}: {e}")
