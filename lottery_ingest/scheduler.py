"""
Scheduler: APScheduler-based wiring of the sync engine.

Schedule (Asia/Ho_Chi_Minh):
- South poll starts 16:13, Central 17:13, North 18:13 (two minutes before each draw)
- Backfill audit daily at 22:00 and once at startup
"""
import asyncio
import signal
from datetime import datetime
from typing import Any, Optional, Union

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from lottery_ingest.clients import MinhNgocClient, ProxyRotator, Xoso188Client
from lottery_ingest.config import Settings, get_settings
from lottery_ingest.database import get_db
from lottery_ingest.ingestion import DrawImporter, DrawReader
from lottery_ingest.models import REGION_SCHEDULES, ImportSummary, Region
from lottery_ingest.sync import BackfillAuditor, BackfillReport, RegionPoller, local_clock
from lottery_ingest.sync.poller import Clock
from lottery_ingest.utils.logging import LogContext

logger = structlog.get_logger()


class LotteryScheduler:
    """
    Owns the region pollers, the backfill auditor and their cron jobs.
    Also exposes the manual trigger surface used by the CLI.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        primary: Optional[MinhNgocClient] = None,
        secondary: Optional[Xoso188Client] = None,
        importer: Optional[DrawImporter] = None,
        reader: Optional[DrawReader] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings or get_settings()
        self.clock = clock or local_clock(self.settings)

        self.proxy_rotator: Optional[ProxyRotator] = None
        if secondary is None and self.settings.auto_proxy_enabled and not self.settings.xoso188_proxy:
            self.proxy_rotator = ProxyRotator(self.settings)

        self.primary = primary or MinhNgocClient(self.settings)
        self.secondary = secondary or Xoso188Client(self.settings, proxy_rotator=self.proxy_rotator)
        self.importer = importer or DrawImporter()
        self.reader = reader or DrawReader()

        self.pollers: dict[Region, RegionPoller] = {
            region: RegionPoller(
                region,
                primary=self.primary,
                secondary=self.secondary,
                importer=self.importer,
                settings=self.settings,
                clock=self.clock,
            )
            for region in Region
        }
        self.auditor = BackfillAuditor(
            secondary=self.secondary,
            importer=self.importer,
            presence=self.reader,
            settings=self.settings,
            clock=self.clock,
        )

        self.scheduler = AsyncIOScheduler(
            timezone=self.settings.schedule_timezone,
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 300,
            },
        )
        self._running = False

    # =========================================================================
    # JOBS
    # =========================================================================

    def schedule_daily_crons(self) -> bool:
        """Register the three region polls and the daily audit."""
        if not self.settings.database_configured:
            logger.warning("Skipping lottery sync schedule: DATABASE_URL not set")
            return False

        for region, schedule in REGION_SCHEDULES.items():
            self.scheduler.add_job(
                self._run_region_job,
                trigger=CronTrigger(
                    hour=schedule.start_at.hour,
                    minute=schedule.start_at.minute,
                    timezone=self.settings.schedule_timezone,
                ),
                id=f"poll_{region.slug}",
                name=f"Poll: {schedule.label}",
                kwargs={"region": region},
                replace_existing=True,
            )
            logger.info(
                "Scheduled region poll",
                region=region.slug,
                label=schedule.label,
                at=f"{schedule.start_at:%H:%M}",
                timezone=self.settings.schedule_timezone,
            )

        self.scheduler.add_job(
            self._run_audit_job,
            trigger=CronTrigger(
                hour=self.settings.audit_hour,
                minute=self.settings.audit_minute,
                timezone=self.settings.schedule_timezone,
            ),
            id="backfill_audit",
            name="Backfill audit",
            replace_existing=True,
        )
        logger.info(
            "Scheduled backfill audit",
            at=f"{self.settings.audit_hour:02d}:{self.settings.audit_minute:02d}",
            window_days=self.settings.backfill_days,
        )
        return True

    async def _run_region_job(self, region: Region):
        with LogContext(job=f"poll_{region.slug}"):
            logger.info("Cron fired", region=region.slug, at=datetime.now().isoformat())
            self.pollers[region].start()

    async def _run_audit_job(self):
        with LogContext(job="backfill_audit"):
            try:
                await self.auditor.audit_and_backfill()
            except Exception as e:
                logger.error("Scheduled backfill audit failed", error=str(e))

    # =========================================================================
    # TRIGGER SURFACE
    # =========================================================================

    def trigger_region_sync(self, region: Union[Region, str]) -> bool:
        """
        Start polling a region now without waiting for it.

        Returns:
            True if a new poll run started
        """
        if not self.settings.database_configured:
            logger.warning("Region sync trigger ignored: DATABASE_URL not set")
            return False
        try:
            region = region if isinstance(region, Region) else Region.from_slug(region)
        except ValueError as e:
            logger.warning("Region sync trigger ignored", error=str(e))
            return False

        logger.info("Manual region sync", region=region.slug, label=REGION_SCHEDULES[region].label)
        return self.pollers[region].start()

    async def import_results(self, payload: Any) -> ImportSummary:
        """Import an external ``{"draws": [...]}`` payload."""
        return await self.importer.import_payload(payload)

    async def run_backfill(self) -> BackfillReport:
        return await self.auditor.audit_and_backfill()

    async def test_region_fetch(self, region: Union[Region, str]) -> dict[str, Any]:
        """Fetch a region from the history source without storing anything."""
        try:
            region = region if isinstance(region, Region) else Region.from_slug(region)
        except ValueError:
            return {"ok": False, "error": "region must be mb | mt | mn"}

        today = self.clock().date()
        try:
            result = await self.secondary.fetch_region(region, None)
        except Exception as e:
            return {"ok": False, "error": str(e) or type(e).__name__}

        draws = result.draws
        sample = None
        if draws:
            sample = {
                "draw_date": draws[0].draw_date.isoformat(),
                "province_code": draws[0].province_code,
                "results_count": len(draws[0].results),
            }
        return {
            "ok": True,
            "region": region.slug,
            "draw_date": today.isoformat(),
            "draws_count": len(draws),
            "for_today_count": sum(1 for d in draws if d.draw_date == today),
            "failed_games": result.failed_games,
            "sample": sample,
        }

    async def ping_sources(self) -> dict[str, Any]:
        primary = await self.primary.fetch(Region.NORTH)
        return {
            "primary": primary.to_dict(),
            "secondary": await self.secondary.ping(),
            "metrics": [self.primary.get_metrics(), self.secondary.get_metrics()],
        }

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_job_status(self) -> list[dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run_time": next_run.isoformat() if next_run else None,
            })
        return jobs

    def get_poll_status(self) -> list[dict]:
        return [poller.state.to_dict() for poller in self.pollers.values()]

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> bool:
        """
        Start cron jobs and the startup audit.

        Returns:
            False when the subsystem is disabled (no database configured)
        """
        if self._running:
            logger.warning("Scheduler already running")
            return True

        if not self.schedule_daily_crons():
            return False

        if self.proxy_rotator is not None:
            await self.proxy_rotator.start()

        if self.settings.run_audit_on_startup:
            # No trigger: runs once, as soon as the scheduler starts
            self.scheduler.add_job(
                self._run_audit_job,
                id="backfill_startup",
                name="Backfill audit (startup)",
                replace_existing=True,
            )

        self.scheduler.start()
        self._running = True
        logger.info("Scheduler started", jobs=self.get_job_status())
        return True

    async def stop(self) -> None:
        """Stop the scheduler and release clients."""
        if self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")
        if self.proxy_rotator is not None:
            await self.proxy_rotator.stop()
        await self.primary.close()
        await self.secondary.close()

    @property
    def is_running(self) -> bool:
        return self._running


async def run_scheduler():
    """Run the scheduler as main process."""
    settings = get_settings()
    scheduler = LotteryScheduler(settings)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    if not await scheduler.start():
        logger.warning("Lottery sync disabled; nothing to run")
        return

    try:
        await stop_event.wait()
        logger.info("Received shutdown signal")
    finally:
        await scheduler.stop()
        db = await get_db()
        await db.close()
