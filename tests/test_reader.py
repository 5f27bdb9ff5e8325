"""
Tests for the read side.
"""
import json
from datetime import date, timedelta

import pytest

from lottery_ingest.ingestion import DrawImporter, DrawReader, issues_to_draws
from lottery_ingest.ingestion.reader import clamp_limit
from lottery_ingest.models import Region
from lottery_ingest.models.catalog import north_province_for


@pytest.fixture
def reader(store):
    return DrawReader(connection_factory=store.connect)


@pytest.fixture
async def seeded(store, make_draw, today):
    importer = DrawImporter(connection_factory=store.connect)
    await importer.import_results([
        make_draw(today, "HCM", "MN"),
        make_draw(today, "HN", "MB"),
        make_draw(today - timedelta(days=7), "HCM", "MN", numbers=("000777",)),
    ])
    return store


class TestClampLimit:

    @pytest.mark.parametrize("raw,expected", [
        (None, 200), ("", 200), ("abc", 200), (0, 200), (-5, 200),
        (10, 10), ("50", 50), (500, 500), (10_000, 500),
    ])
    def test_clamp(self, raw, expected):
        assert clamp_limit(raw) == expected


class TestDrawReader:
    """Queries over stored draws"""

    async def test_has_draws_on(self, reader, seeded, today):
        assert await reader.has_draws_on(today) is True
        assert await reader.has_draws_on(today - timedelta(days=1)) is False

    async def test_draws_by_date_with_results(self, reader, seeded, today):
        draws = await reader.get_draws_by_date(today)
        assert [d["region_code"] for d in draws] == ["MB", "MN"]
        assert all(len(d["results"]) == 2 for d in draws)

        south = await reader.get_draws_by_date(today, Region.SOUTH)
        assert [d["province_code"] for d in south] == ["HCM"]

    async def test_draw_with_results(self, reader, seeded, today):
        found = await reader.get_draw_with_results(today, "HCM", "MN")
        assert found is not None
        assert {r["prize_code"] for r in found["results"]} == {"DB", "G1"}

    async def test_history_metadata(self, reader, seeded):
        history = await reader.get_history_list_game("tphc")
        assert history["code"] == "tphc"
        assert history["navCate"] == "mn"
        assert history["sort"] == 30
        assert history["openTimeByRegion"] == "16:15:00"
        assert [d["draw_date"] for d in history["draws"]] == [date(2026, 10, 19), date(2026, 10, 12)]

    async def test_history_unknown_game(self, reader, seeded):
        assert await reader.get_history_list_game("zzzz") is None

    async def test_issue_list_shape(self, reader, seeded):
        payload = await reader.get_issue_list("tphc", limit=1)
        issues = payload["t"]["issueList"]
        assert len(issues) == 1
        assert issues[0]["turnNum"] == "19/10/2026"
        assert json.loads(issues[0]["detail"])[:2] == ["123456", "54321"]

    async def test_issue_list_none_when_nothing_stored(self, reader, seeded):
        assert await reader.get_issue_list("dana") is None


class TestNorthRoundTrip:
    """Rotated North province survives ingest and query"""

    async def test_saturday_draw_stored_under_rotated_province(self, reader, store, north_detail):
        saturday = date(2026, 10, 24)
        draws = issues_to_draws("miba", [{"turnNum": "24/10/2026", "detail": north_detail}])

        summary = await DrawImporter(connection_factory=store.connect).import_results(draws)
        stored = await reader.get_draws_by_date(saturday, Region.NORTH)

        assert summary.imported == 1
        assert [d["province_code"] for d in stored] == [north_province_for(saturday)] == ["ND"]
        assert len(stored[0]["results"]) == 27
