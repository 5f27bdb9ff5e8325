"""
Region poll loop.

Each region gets one poller. Once started it ticks every few seconds: the
live source first, the history source as fallback. The first tick that finds
a draw dated today hands that batch to the importer and ends the run. A run
that finds nothing within the poll window ends as timed out and leaves the day
to the backfill auditor.
"""
import asyncio
import time
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol
from zoneinfo import ZoneInfo

import structlog

from lottery_ingest.config import Settings, get_settings
from lottery_ingest.models import (
    REGION_SCHEDULES,
    Draw,
    ImportSummary,
    Region,
    SourceResult,
)

logger = structlog.get_logger()

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]


class PrimarySource(Protocol):
    async def fetch(self, region: Region) -> SourceResult: ...


class SecondarySource(Protocol):
    async def fetch_region(self, region: Region, filter_date: Optional[date] = None) -> SourceResult: ...


class Importer(Protocol):
    async def import_results(self, draws: list[Draw]) -> ImportSummary: ...


def local_clock(settings: Optional[Settings] = None) -> Clock:
    """Clock returning aware datetimes in the schedule time zone."""
    tz = ZoneInfo((settings or get_settings()).schedule_timezone)
    return lambda: datetime.now(tz)


class PollStatus(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    RESOLVED = "resolved"
    TIMED_OUT = "timed_out"


@dataclass
class PollState:
    """Per-region poll bookkeeping, owned by its RegionPoller."""
    region: Region
    status: PollStatus = PollStatus.IDLE
    task: Optional[asyncio.Task] = None
    started_at: Optional[float] = None
    draw_date: Optional[date] = None
    ticks: int = 0
    fallback_logged: bool = False
    in_flight: bool = False
    summary: Optional[ImportSummary] = None

    @property
    def is_active(self) -> bool:
        return self.status is PollStatus.POLLING

    def to_dict(self) -> dict:
        return {
            "region": self.region.slug,
            "status": self.status.value,
            "draw_date": self.draw_date.isoformat() if self.draw_date else None,
            "ticks": self.ticks,
            "summary": self.summary.model_dump() if self.summary else None,
        }


class RegionPoller:
    """Polls the sources for one region until today's result is stored."""

    def __init__(
        self,
        region: Region,
        primary: PrimarySource,
        secondary: SecondarySource,
        importer: Importer,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        sleep: Sleep = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.region = region
        self.schedule = REGION_SCHEDULES[region]
        self._primary = primary
        self._secondary = secondary
        self._importer = importer
        self._settings = settings or get_settings()
        self._clock = clock or local_clock(self._settings)
        self._sleep = sleep
        self._monotonic = monotonic
        self._state = PollState(region=region)
        self._log = logger.bind(region=region.slug, label=self.schedule.label)

    @property
    def state(self) -> PollState:
        return self._state

    def start(self) -> bool:
        """
        Begin polling in the background.

        Returns:
            False when a run for this region is already active
        """
        if self._state.is_active:
            self._log.info("Poll already active, ignoring trigger", ticks=self._state.ticks)
            return False

        today = self._clock().date()
        self._state = PollState(
            region=self.region,
            status=PollStatus.POLLING,
            started_at=self._monotonic(),
            draw_date=today,
        )
        self._log.info(
            "Poll started",
            draw_date=today.isoformat(),
            draw_window=f"{self.schedule.draw_start:%H:%M}-{self.schedule.draw_end:%H:%M}",
            interval_s=self._settings.poll_interval_seconds,
        )
        self._state.task = asyncio.create_task(self._run(self._state))
        return True

    async def wait(self) -> PollState:
        """Wait for the current run (if any) to finish."""
        task = self._state.task
        if task is not None:
            await task
        return self._state

    async def _run(self, state: PollState) -> None:
        try:
            while state.is_active:
                elapsed = self._monotonic() - state.started_at
                if elapsed > self._settings.max_poll_duration_seconds:
                    state.status = PollStatus.TIMED_OUT
                    self._log.warning(
                        "Poll window exhausted without a result",
                        draw_date=state.draw_date.isoformat(),
                        ticks=state.ticks,
                    )
                    break

                state.in_flight = True
                try:
                    await self._tick(state)
                except Exception as e:
                    self._log.error("Poll tick failed", tick=state.ticks, error=str(e))
                finally:
                    state.in_flight = False

                if state.is_active:
                    await self._sleep(self._settings.poll_interval_seconds)
        finally:
            state.task = None

    async def _tick(self, state: PollState) -> None:
        state.ticks += 1

        primary = await self._primary.fetch(self.region)
        draws = primary.draws

        if not draws:
            if not state.fallback_logged:
                self._log.info(
                    "Live source has no result, falling back to history source",
                    primary_status=primary.status.value,
                )
                state.fallback_logged = True
            secondary = await self._secondary.fetch_region(self.region, state.draw_date)
            draws = secondary.draws

        for_today = [d for d in draws if d.draw_date == state.draw_date]
        if not for_today:
            self._log.debug("No result for today yet", tick=state.ticks)
            return

        # Stop before importing so a slow import cannot trigger another tick
        state.status = PollStatus.RESOLVED
        try:
            state.summary = await self._importer.import_results(for_today)
            self._log.info(
                "Stored today's result",
                tick=state.ticks,
                draws=len(for_today),
                imported=state.summary.imported,
                skipped=state.summary.skipped,
            )
        except Exception as e:
            self._log.error("Import failed", draws=len(for_today), error=str(e))
