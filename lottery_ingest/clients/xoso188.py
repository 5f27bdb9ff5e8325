"""
Secondary source: xoso188 per-game draw history.

Endpoint: ``GET /api/front/open/lottery/history/list/game?limitNum=N&gameCode=X``
returning ``{"t": {"issueList": [{"turnNum": ..., "detail": ...}, ...]}}``.
"""
import asyncio
from datetime import date
from typing import Any, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_none,
)

from lottery_ingest.clients.base import BROWSER_HEADERS, BaseAPIClient, SourceResponseError
from lottery_ingest.clients.proxy import ProxyRotator
from lottery_ingest.config import Settings, get_settings
from lottery_ingest.ingestion.normalizer import issues_to_draws
from lottery_ingest.models import Draw, Region, SourceResult, SourceStatus
from lottery_ingest.models.catalog import NORTH_GAME_CODE, REGION_GAME_CODES

logger = structlog.get_logger()

HISTORY_PATH = "/api/front/open/lottery/history/list/game"


def extract_issue_list(payload: Any) -> list[dict[str, Any]]:
    """
    Pull the issue list out of a decoded response.

    Raises:
        SourceResponseError: the list is empty and the body reports an error
    """
    issues: Any = None
    if isinstance(payload, dict):
        t = payload.get("t")
        if isinstance(t, dict):
            issues = t.get("issueList")

    if isinstance(issues, list) and issues:
        return issues

    if isinstance(payload, dict) and _has_error_marker(payload):
        raise SourceResponseError(
            f"empty issue list with error: code={payload.get('code')} msg={payload.get('msg') or payload.get('message')}"
        )
    return []


def _has_error_marker(payload: dict[str, Any]) -> bool:
    if payload.get("success") is False:
        return True
    code = payload.get("code")
    return code not in (None, 0, 200, "0", "200")


class Xoso188Client(BaseAPIClient):
    """Client for the xoso188 history endpoint."""

    SOURCE = "xoso188"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        proxy_rotator: Optional[ProxyRotator] = None,
        sleep=asyncio.sleep,
        **kwargs,
    ):
        settings = settings or get_settings()
        self.BASE_URL = settings.xoso188_base_url
        super().__init__(settings=settings, **kwargs)
        self._proxy_rotator = proxy_rotator
        self._sleep = sleep

    def _get_headers(self) -> dict[str, str]:
        return {**BROWSER_HEADERS, "Accept": "application/json"}

    def _get_proxy(self) -> Optional[str]:
        if self._settings.xoso188_proxy:
            return self._settings.xoso188_proxy
        if self._proxy_rotator is not None:
            return self._proxy_rotator.current
        return None

    async def _fetch_issue_list_once(self, game_code: str, limit: int) -> list[dict[str, Any]]:
        try:
            response = await self._make_request(
                "GET",
                HISTORY_PATH,
                params={"limitNum": limit, "gameCode": game_code},
            )
        except httpx.TransportError:
            if self._proxy_rotator is not None and not self._settings.xoso188_proxy:
                await self._proxy_rotator.on_failure()
            raise

        if response.status_code != 200:
            raise SourceResponseError(f"HTTP {response.status_code}", status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise SourceResponseError("response body is not JSON", status_code=response.status_code) from e

        return extract_issue_list(payload)

    async def fetch_game(self, game_code: str, limit: Optional[int] = None) -> list[dict[str, Any]]:
        """
        Fetch the latest raw issues of one game.

        Bad responses are retried immediately up to the configured attempt
        ceiling. Never raises; an empty list means "nothing usable", not
        "no draw happened".
        """
        limit = limit or self._settings.secondary_limit_num
        attempts = self._settings.secondary_max_attempts

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_none(),
                retry=retry_if_exception_type((httpx.HTTPError, SourceResponseError)),
            ):
                with attempt:
                    return await self._fetch_issue_list_once(game_code, limit)
        except RetryError as e:
            last = e.last_attempt.exception()
            logger.warning(
                "History fetch gave up",
                source=self.SOURCE,
                game_code=game_code,
                attempts=attempts,
                error=str(last) or type(last).__name__,
            )
        return []

    async def fetch_region(self, region: Region, filter_date: Optional[date] = None) -> SourceResult:
        """
        Fetch and normalize every game of a region.

        A failing game is logged and skipped; the others still run.
        """
        draws: list[Draw] = []
        failed: list[str] = []

        for index, game_code in enumerate(REGION_GAME_CODES[region]):
            if index > 0:
                await self._sleep(self._settings.per_game_delay_seconds)
            try:
                issues = await self.fetch_game(game_code)
                draws.extend(issues_to_draws(game_code, issues, filter_date))
            except Exception as e:
                failed.append(game_code)
                logger.warning(
                    "Game fetch failed",
                    source=self.SOURCE,
                    region=region.slug,
                    game_code=game_code,
                    error=str(e),
                )

        status = SourceStatus.OK if draws else SourceStatus.NOT_AVAILABLE
        return SourceResult(self.SOURCE, status, draws=draws, failed_games=failed)

    async def ping(self) -> dict[str, Any]:
        """Check that the history endpoint answers from this host."""
        try:
            response = await self._make_request(
                "GET",
                HISTORY_PATH,
                params={"limitNum": 2, "gameCode": NORTH_GAME_CODE},
            )
            count = 0
            if response.status_code == 200:
                count = len(extract_issue_list(response.json()))
            return {
                "ok": response.status_code == 200,
                "status": response.status_code,
                "message": "OK" if response.status_code == 200 else response.reason_phrase,
                "count": count,
                "source": self.SOURCE,
            }
        except (httpx.HTTPError, SourceResponseError, ValueError) as e:
            return {
                "ok": False,
                "status": 0,
                "message": str(e) or type(e).__name__,
                "count": 0,
                "source": self.SOURCE,
            }
