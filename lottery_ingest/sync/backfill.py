"""
Backfill auditor: finds recent days with no stored draws and fetches them.

Runs once a day and at startup. It only fills gaps; a day that already has
any draw is never fetched again.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional, Protocol

import structlog

from lottery_ingest.config import Settings, get_settings
from lottery_ingest.models import EARLIEST_DRAW_HOUR, Draw, Region
from lottery_ingest.sync.poller import Clock, Importer, SecondarySource, local_clock

logger = structlog.get_logger()


class DrawPresence(Protocol):
    async def has_draws_on(self, draw_date: date) -> bool: ...


def audit_dates(now: datetime, window_days: int) -> list[date]:
    """
    Dates to audit, newest first.

    The window is ``window_days`` long and ends today. Before the first draw
    of the day today is dropped, since it cannot have data yet.
    """
    today = now.date()
    dates = [today - timedelta(days=offset) for offset in range(window_days)]
    if now.hour < EARLIEST_DRAW_HOUR:
        dates = dates[1:]
    return dates


@dataclass
class DateAudit:
    draw_date: date
    status: str                     # "present", "filled", "empty", "failed"
    per_region: dict[str, int] = field(default_factory=dict)
    imported: int = 0
    skipped: int = 0
    error: Optional[str] = None


@dataclass
class BackfillReport:
    dates: list[DateAudit] = field(default_factory=list)

    @property
    def imported(self) -> int:
        return sum(d.imported for d in self.dates)

    @property
    def failed(self) -> list[date]:
        return [d.draw_date for d in self.dates if d.status == "failed"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "dates": [
                {
                    "draw_date": d.draw_date.isoformat(),
                    "status": d.status,
                    "per_region": d.per_region,
                    "imported": d.imported,
                    "skipped": d.skipped,
                    "error": d.error,
                }
                for d in self.dates
            ],
        }


class BackfillAuditor:
    """Audits the trailing window and re-fetches missing days."""

    def __init__(
        self,
        secondary: SecondarySource,
        importer: Importer,
        presence: DrawPresence,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self._secondary = secondary
        self._importer = importer
        self._presence = presence
        self._settings = settings or get_settings()
        self._clock = clock or local_clock(self._settings)

    async def audit_and_backfill(self) -> BackfillReport:
        now = self._clock()
        dates = audit_dates(now, self._settings.backfill_days)
        report = BackfillReport()

        logger.info(
            "Backfill audit started",
            window_days=self._settings.backfill_days,
            include_today=bool(dates) and dates[0] == now.date(),
            dates=[d.isoformat() for d in dates],
        )

        for draw_date in dates:
            try:
                audit = await self._audit_date(draw_date)
            except Exception as e:
                logger.error("Backfill failed for date", draw_date=draw_date.isoformat(), error=str(e))
                audit = DateAudit(draw_date=draw_date, status="failed", error=str(e))
            report.dates.append(audit)

        logger.info(
            "Backfill audit finished",
            imported=report.imported,
            filled=[d.draw_date.isoformat() for d in report.dates if d.status == "filled"],
            failed=[d.isoformat() for d in report.failed],
        )
        return report

    async def _audit_date(self, draw_date: date) -> DateAudit:
        if await self._presence.has_draws_on(draw_date):
            logger.debug("Date already covered", draw_date=draw_date.isoformat())
            return DateAudit(draw_date=draw_date, status="present")

        batch: list[Draw] = []
        per_region: dict[str, int] = {}
        for region in (Region.SOUTH, Region.CENTRAL, Region.NORTH):
            result = await self._secondary.fetch_region(region, draw_date)
            per_region[region.slug] = len(result.draws)
            batch.extend(result.draws)

        logger.info(
            "Backfill fetched missing date",
            draw_date=draw_date.isoformat(),
            per_region=per_region,
            total=len(batch),
        )

        if not batch:
            return DateAudit(draw_date=draw_date, status="empty", per_region=per_region)

        summary = await self._importer.import_results(batch)
        return DateAudit(
            draw_date=draw_date,
            status="filled",
            per_region=per_region,
            imported=summary.imported,
            skipped=summary.skipped,
        )
