"""
Tests for the scheduler wiring and the manual trigger surface.
"""
from datetime import datetime

import pytest

from lottery_ingest.config import Settings
from lottery_ingest.models import ImportSummary, Region, SourceResult, SourceStatus
from lottery_ingest.scheduler import LotteryScheduler
from lottery_ingest.sync import PollStatus

NOW = datetime(2026, 10, 19, 16, 14)


class FakePrimary:

    async def fetch(self, region):
        return SourceResult("minhngoc", SourceStatus.NOT_AVAILABLE)

    def get_metrics(self):
        return {"source": "minhngoc"}

    async def close(self):
        pass


class FakeSecondary:

    def __init__(self, make_draw, failed_games=()):
        self.make_draw = make_draw
        self.failed_games = list(failed_games)

    async def fetch_region(self, region, filter_date=None):
        draws = [self.make_draw(NOW.date()), self.make_draw(datetime(2026, 10, 12).date())]
        if filter_date is not None:
            draws = [d for d in draws if d.draw_date == filter_date]
        return SourceResult("xoso188", SourceStatus.OK, draws=draws, failed_games=self.failed_games)

    async def ping(self):
        return {"ok": True, "source": "xoso188"}

    def get_metrics(self):
        return {"source": "xoso188"}

    async def close(self):
        pass


class FakeImporter:

    def __init__(self):
        self.batches = []
        self.payloads = []

    async def import_results(self, draws):
        self.batches.append(list(draws))
        return ImportSummary(imported=len(draws))

    async def import_payload(self, payload):
        self.payloads.append(payload)
        return ImportSummary(imported=len(payload["draws"]))


class FakeReader:

    async def has_draws_on(self, draw_date):
        return True


@pytest.fixture
def make_scheduler(make_draw):
    def _make(settings, failed_games=()):
        return LotteryScheduler(
            settings,
            primary=FakePrimary(),
            secondary=FakeSecondary(make_draw, failed_games),
            importer=FakeImporter(),
            reader=FakeReader(),
            clock=lambda: NOW,
        )
    return _make


def trigger_fields(job):
    return {f.name: str(f) for f in job.trigger.fields if not f.is_default}


class TestCronJobs:
    """Daily schedule"""

    def test_region_polls_and_audit_registered(self, settings, make_scheduler):
        scheduler = make_scheduler(settings)
        assert scheduler.schedule_daily_crons() is True

        jobs = {job.id: job for job in scheduler.scheduler.get_jobs()}
        assert set(jobs) == {"poll_mn", "poll_mt", "poll_mb", "backfill_audit"}
        assert trigger_fields(jobs["poll_mn"]) == {"hour": "16", "minute": "13"}
        assert trigger_fields(jobs["poll_mt"]) == {"hour": "17", "minute": "13"}
        assert trigger_fields(jobs["poll_mb"]) == {"hour": "18", "minute": "13"}
        assert trigger_fields(jobs["backfill_audit"]) == {"hour": "22", "minute": "0"}
        assert str(jobs["poll_mn"].trigger.timezone) == "Asia/Ho_Chi_Minh"

    def test_job_status_before_start(self, settings, make_scheduler):
        scheduler = make_scheduler(settings)
        scheduler.schedule_daily_crons()
        status = scheduler.get_job_status()
        assert len(status) == 4
        assert all(job["next_run_time"] is None for job in status)


class TestDegradedMode:
    """No database configured"""

    @pytest.fixture
    def no_db_settings(self):
        return Settings(_env_file=None, database_url=None, xoso188_proxy=None, run_audit_on_startup=False)

    async def test_nothing_scheduled(self, no_db_settings, make_scheduler):
        scheduler = make_scheduler(no_db_settings)
        assert await scheduler.start() is False
        assert scheduler.is_running is False
        assert scheduler.scheduler.get_jobs() == []

    def test_trigger_refused(self, no_db_settings, make_scheduler):
        scheduler = make_scheduler(no_db_settings)
        assert scheduler.trigger_region_sync("mn") is False
        assert all(p.state.status is PollStatus.IDLE for p in scheduler.pollers.values())


class TestTriggerSurface:
    """Manual operations"""

    async def test_trigger_then_duplicate_trigger(self, settings, make_scheduler):
        scheduler = make_scheduler(settings)

        assert scheduler.trigger_region_sync("mn") is True
        assert scheduler.trigger_region_sync(Region.SOUTH) is False
        state = await scheduler.pollers[Region.SOUTH].wait()

        assert state.status is PollStatus.RESOLVED
        assert [d.draw_date for d in scheduler.importer.batches[0]] == [NOW.date()]
        polls = {p["region"]: p["status"] for p in scheduler.get_poll_status()}
        assert polls == {"mb": "idle", "mt": "idle", "mn": "resolved"}

    def test_trigger_invalid_region(self, settings, make_scheduler):
        assert make_scheduler(settings).trigger_region_sync("xx") is False

    async def test_region_fetch_invalid_region(self, settings, make_scheduler):
        result = await make_scheduler(settings).test_region_fetch("zz")
        assert result == {"ok": False, "error": "region must be mb | mt | mn"}

    async def test_region_fetch_counts(self, settings, make_scheduler):
        result = await make_scheduler(settings, failed_games=["vuta"]).test_region_fetch("MN")

        assert result["ok"] is True
        assert result["region"] == "mn"
        assert result["draw_date"] == "2026-10-19"
        assert result["draws_count"] == 2
        assert result["for_today_count"] == 1
        assert result["failed_games"] == ["vuta"]
        assert result["sample"]["province_code"] == "HCM"

    async def test_import_results_delegates(self, settings, make_scheduler):
        scheduler = make_scheduler(settings)
        summary = await scheduler.import_results({"draws": [{}, {}]})
        assert summary.imported == 2
        assert scheduler.importer.payloads == [{"draws": [{}, {}]}]

    async def test_ping_sources(self, settings, make_scheduler):
        result = await make_scheduler(settings).ping_sources()
        assert result["primary"]["status"] == "not_available"
        assert result["secondary"]["ok"] is True
        assert len(result["metrics"]) == 2

    async def test_start_and_stop(self, settings, make_scheduler):
        scheduler = make_scheduler(settings)
        assert await scheduler.start() is True
        assert scheduler.is_running is True
        await scheduler.stop()
        assert scheduler.is_running is False
