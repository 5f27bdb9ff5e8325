"""
Read side: stored draws, shaped for callers and for the upstream-compatible
history payload.
"""
from collections import defaultdict
from datetime import date
from typing import Any, Optional

import structlog

from lottery_ingest.database import get_db
from lottery_ingest.ingestion.normalizer import draws_to_issue_list
from lottery_ingest.ingestion.writer import ConnectionFactory
from lottery_ingest.models import REGION_SCHEDULES, Region

logger = structlog.get_logger()

DEFAULT_HISTORY_LIMIT = 200
MAX_HISTORY_LIMIT = 500


def clamp_limit(limit: Any) -> int:
    """Parse a requested row limit, defaulting to 200 and capping at 500."""
    try:
        value = int(limit)
    except (TypeError, ValueError):
        value = 0
    if value <= 0:
        value = DEFAULT_HISTORY_LIMIT
    return min(value, MAX_HISTORY_LIMIT)


class DrawReader:
    """Read-only queries over draws and results."""

    def __init__(self, connection_factory: Optional[ConnectionFactory] = None):
        self._connection_factory = connection_factory

    async def _connection(self):
        if self._connection_factory is not None:
            return self._connection_factory()
        db = await get_db()
        return db.asyncpg_connection()

    async def has_draws_on(self, draw_date: date) -> bool:
        async with await self._connection() as conn:
            found = await conn.fetchval(
                "SELECT EXISTS (SELECT 1 FROM lottery_draws WHERE draw_date = $1)",
                draw_date,
            )
        return bool(found)

    async def get_results_by_draw_ids(self, draw_ids: list[int]) -> dict[int, list[dict[str, Any]]]:
        if not draw_ids:
            return {}
        async with await self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT draw_id, prize_code, prize_order, result_number
                FROM lottery_results
                WHERE draw_id = ANY($1::int[])
                ORDER BY draw_id, prize_code, prize_order
                """,
                draw_ids,
            )
        by_draw: dict[int, list[dict[str, Any]]] = defaultdict(list)
        for row in rows:
            by_draw[row["draw_id"]].append({
                "prize_code": row["prize_code"],
                "prize_order": row["prize_order"],
                "result_number": row["result_number"],
            })
        return by_draw

    async def get_draws_by_date(
        self,
        draw_date: date,
        region: Optional[Region] = None,
    ) -> list[dict[str, Any]]:
        """Draws of one day, optionally one region, each with its results."""
        query = """
            SELECT d.id, d.draw_date, p.code AS province_code, p.name AS province_name,
                   r.code AS region_code, d.created_at
            FROM lottery_draws d
            JOIN lottery_provinces p ON d.province_id = p.id
            JOIN regions r ON d.region_id = r.id
            WHERE d.draw_date = $1
        """
        params: list[Any] = [draw_date]
        if region is not None:
            query += " AND r.code = $2"
            params.append(region.value)
        query += " ORDER BY r.id, p.name"

        async with await self._connection() as conn:
            rows = await conn.fetch(query, *params)

        draws = [dict(row) for row in rows]
        results = await self.get_results_by_draw_ids([d["id"] for d in draws])
        for draw in draws:
            draw["results"] = results.get(draw["id"], [])
        return draws

    async def get_draw_with_results(
        self,
        draw_date: date,
        province_code: str,
        region_code: str,
    ) -> Optional[dict[str, Any]]:
        async with await self._connection() as conn:
            draw_id = await conn.fetchval(
                """
                SELECT d.id FROM lottery_draws d
                JOIN lottery_provinces p ON d.province_id = p.id
                JOIN regions r ON d.region_id = r.id
                WHERE d.draw_date = $1 AND p.code = $2 AND r.code = $3
                """,
                draw_date,
                province_code,
                region_code,
            )
        if draw_id is None:
            return None
        results = await self.get_results_by_draw_ids([draw_id])
        return {"draw_id": draw_id, "results": results.get(draw_id, [])}

    async def get_history_list_game(self, game_code: str, limit: Any = None) -> Optional[dict[str, Any]]:
        """
        Latest draws of a game with display metadata.

        Returns:
            None when the game code is not in the catalog table
        """
        async with await self._connection() as conn:
            meta = await conn.fetchrow(
                """
                SELECT p.name, p.api_game_code, r.code AS region_code
                FROM lottery_provinces p
                JOIN regions r ON p.region_id = r.id
                WHERE p.api_game_code = $1
                LIMIT 1
                """,
                game_code,
            )
            if meta is None:
                return None

            draw_rows = await conn.fetch(
                """
                SELECT d.id AS draw_id, d.draw_date
                FROM lottery_draws d
                JOIN lottery_provinces p ON d.province_id = p.id
                WHERE p.api_game_code = $1
                ORDER BY d.draw_date DESC
                LIMIT $2
                """,
                game_code,
                clamp_limit(limit),
            )

        results = await self.get_results_by_draw_ids([row["draw_id"] for row in draw_rows])
        region_code = meta["region_code"]
        try:
            schedule = REGION_SCHEDULES[Region(region_code)]
        except ValueError:
            schedule = None

        return {
            "name": meta["name"],
            "code": meta["api_game_code"],
            "sort": schedule.sort if schedule else 0,
            "navCate": region_code.lower(),
            "openTimeByRegion": schedule.open_time if schedule else "17:15:00",
            "draws": [
                {
                    "draw_date": row["draw_date"],
                    "draw_id": row["draw_id"],
                    "results": results.get(row["draw_id"], []),
                }
                for row in draw_rows
            ],
        }

    async def get_issue_list(self, game_code: str, limit: Any = None) -> Optional[dict[str, Any]]:
        """
        Stored history in the upstream response shape.

        Returns:
            None when nothing is stored for the game, so callers can fall
            through to the live source
        """
        history = await self.get_history_list_game(game_code, limit)
        if not history or not history["draws"]:
            return None
        return {"t": {"issueList": draws_to_issue_list(history["draws"])}}
