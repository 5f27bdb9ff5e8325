"""
Primary source: the live per-region result scripts published by Minh Ngoc.

The script body is a JavaScript assignment such as
``kqxs.mn={run:0,tinh:"1,19,21,20",ntime:...,delay:5000}``. It only carries
run-state metadata, never the winning numbers, so every call currently ends
without draws and callers fall back to the history source.
"""
import json
import re
import time
from typing import Any, Optional

import httpx
import structlog

from lottery_ingest.clients.base import BaseAPIClient
from lottery_ingest.config import Settings, get_settings
from lottery_ingest.models import REGION_SCHEDULES, Region, SourceResult, SourceStatus

logger = structlog.get_logger()

_ASSIGNMENT = re.compile(r"kqxs\.(mn|mb|mt)\s*=\s*(\{[^}]+\})")
_BARE_KEY = re.compile(r"(\w+):")


def parse_live_script(text: str) -> Optional[dict[str, Any]]:
    """Extract the state object from a live script, None when unusable."""
    match = _ASSIGNMENT.search(text or "")
    if not match:
        return None
    # Quote bare keys so the object literal becomes JSON
    candidate = _BARE_KEY.sub(r'"\1":', match.group(2))
    try:
        data = json.loads(candidate)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class MinhNgocClient(BaseAPIClient):
    """Client for the Minh Ngoc live result scripts."""

    SOURCE = "minhngoc"

    def __init__(self, settings: Optional[Settings] = None, **kwargs):
        settings = settings or get_settings()
        self.BASE_URL = settings.minhngoc_base_url
        super().__init__(settings=settings, timeout_seconds=kwargs.pop("timeout_seconds", 15), **kwargs)

    def _get_headers(self) -> dict[str, str]:
        return {
            "Accept": "*/*",
            "User-Agent": "Mozilla/5.0 (compatible; LotterySync/1.0)",
        }

    async def fetch(self, region: Region) -> SourceResult:
        """
        Fetch today's live state for a region.

        Never raises; a result without draws is the normal outcome.
        """
        script = REGION_SCHEDULES[region].primary_script
        params = {"_": int(time.time() * 1000)}

        try:
            response = await self._make_request("GET", f"/{script}", params=params)
        except httpx.HTTPError as e:
            return SourceResult(self.SOURCE, SourceStatus.UNREACHABLE, detail=str(e) or type(e).__name__)

        if response.status_code != 200:
            return SourceResult(
                self.SOURCE,
                SourceStatus.UNREACHABLE,
                detail=f"HTTP {response.status_code}",
            )

        state = parse_live_script(response.text)
        if state is None:
            return SourceResult(self.SOURCE, SourceStatus.PARSE_ERROR, detail="no state object in script")

        if state.get("run") == 1 and state.get("result"):
            # The live feed never shipped a documented result format
            logger.info("Live feed carries a result payload", region=region.slug)
            return SourceResult(self.SOURCE, SourceStatus.UNSUPPORTED, detail="result payload not decoded")

        return SourceResult(self.SOURCE, SourceStatus.NOT_AVAILABLE, detail=f"run={state.get('run')}")
