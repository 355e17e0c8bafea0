from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from dalat_news_pipeline.config import HttpSettings


logger = logging.getLogger(__name__)


class HttpClient:
    """Polite article fetcher.

    Every fetch sleeps for the caller's delay first, then issues one GET with
    a hard timeout. Failures of any kind come back as ``None`` so scrapers can
    treat them uniformly as "skip this item".
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        settings: HttpSettings | None = None,
        *,
        sleep=asyncio.sleep,
    ) -> None:
        self._session = session
        self._settings = settings or HttpSettings()
        self._timeout = aiohttp.ClientTimeout(total=self._settings.timeout_seconds)
        self._sleep = sleep

    @property
    def headers(self) -> dict[str, str]:
        return {
            "User-Agent": self._settings.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": self._settings.accept_language,
        }

    async def fetch_with_delay(self, url: str, delay_ms: int = 500) -> Optional[str]:
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000.0)

        try:
            async with self._session.get(url, headers=self.headers, timeout=self._timeout) as r:
                if not 200 <= r.status < 300:
                    logger.info("%s returned HTTP %s", url, r.status)
                    return None
                return await r.text(errors="ignore")
        except asyncio.TimeoutError:
            logger.warning("Timeout fetching %s (%.0fs)", url, self._settings.timeout_seconds)
            return None
        except aiohttp.ClientError as exc:
            logger.warning("Network error fetching %s: %s", url, exc)
            return None
