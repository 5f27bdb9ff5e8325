"""
Free proxy rotation for the history source.

Used only when no relay is configured and AUTO_PROXY_ENABLED is set: a public
proxy list is downloaded, one entry is picked at random, the choice is
refreshed periodically and replaced right away after a transport failure.
"""
import asyncio
import random
import re
from typing import Optional

import httpx
import structlog

from lottery_ingest.config import Settings, get_settings

logger = structlog.get_logger()

_IP_PORT = re.compile(r"^\d+\.\d+\.\d+\.\d+:\d+$")
MAX_CANDIDATES = 100


class ProxyRotator:
    """Holds the proxy currently in use and knows how to replace it."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rng: Optional[random.Random] = None,
    ):
        self._settings = settings or get_settings()
        self._transport = transport
        self._rng = rng or random.Random()
        self._current: Optional[str] = None
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def current(self) -> Optional[str]:
        return self._current

    async def fetch_candidates(self) -> list[str]:
        """Download the proxy list, returning ``http://ip:port`` URLs."""
        try:
            async with httpx.AsyncClient(timeout=15, transport=self._transport) as client:
                response = await client.get(self._settings.proxy_list_url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Proxy list download failed", error=str(e) or type(e).__name__)
            return []

        lines = (line.strip() for line in response.text.splitlines())
        candidates = [f"http://{line}" for line in lines if _IP_PORT.match(line)]
        return candidates[:MAX_CANDIDATES]

    async def refresh(self) -> Optional[str]:
        """Pick a new proxy; clears the current one when none are available."""
        candidates = await self.fetch_candidates()
        if not candidates:
            self._current = None
            return None
        self._current = self._rng.choice(candidates)
        logger.info("Switched proxy", proxy=self._current, candidates=len(candidates))
        return self._current

    async def on_failure(self) -> Optional[str]:
        """Drop the current proxy after a failed request and pick another."""
        self._current = None
        return await self.refresh()

    async def start(self) -> None:
        """Pick an initial proxy and keep refreshing it in the background."""
        await self.refresh()
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh_loop())
            logger.info("Scheduled proxy refresh", every_hours=self._settings.proxy_refresh_hours)

    async def stop(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

    async def _refresh_loop(self) -> None:
        interval = self._settings.proxy_refresh_hours * 3600
        while True:
            await asyncio.sleep(interval)
            await self.refresh()
