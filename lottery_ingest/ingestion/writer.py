"""
Write path for draws and results.

This is the only code that writes ``lottery_draws`` and ``lottery_results``.
Idempotence comes from the unique constraints and ``ON CONFLICT`` clauses, so
the poller and the auditor may import overlapping batches concurrently.
"""
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, Iterable, Optional

import structlog
from pydantic import ValidationError

from lottery_ingest.database import get_db
from lottery_ingest.models import Draw, ImportSummary, SkipReason

logger = structlog.get_logger()

ConnectionFactory = Callable[[], AbstractAsyncContextManager]

REGION_ID_QUERY = "SELECT id FROM regions WHERE code = $1"

PROVINCE_ID_QUERY = "SELECT id FROM lottery_provinces WHERE code = $1 AND region_id = $2"

INSERT_DRAW_QUERY = """
    INSERT INTO lottery_draws (draw_date, province_id, region_id)
    VALUES ($1, $2, $3)
    ON CONFLICT (draw_date, province_id) DO NOTHING
    RETURNING id
"""

EXISTING_DRAW_QUERY = "SELECT id FROM lottery_draws WHERE draw_date = $1 AND province_id = $2"

UPSERT_RESULT_QUERY = """
    INSERT INTO lottery_results (draw_id, prize_code, prize_order, result_number)
    VALUES ($1, $2, $3, $4)
    ON CONFLICT (draw_id, prize_code, prize_order) DO UPDATE SET
        result_number = EXCLUDED.result_number
"""


class InvalidPayloadError(ValueError):
    """The import payload carries no draws list."""


class DrawImporter:
    """
    Upserts draws with their results.

    Args:
        connection_factory: Returns an async context manager yielding an
            asyncpg-compatible connection. Defaults to the shared pool.
    """

    def __init__(self, connection_factory: Optional[ConnectionFactory] = None):
        self._connection_factory = connection_factory

    async def _connection(self) -> AbstractAsyncContextManager:
        if self._connection_factory is not None:
            return self._connection_factory()
        db = await get_db()
        return db.asyncpg_connection()

    async def import_results(self, draws: Iterable[Draw]) -> ImportSummary:
        """
        Store a batch of draws.

        Unknown regions or provinces and empty draws are skipped and counted;
        they never abort the batch.
        """
        draws = list(draws)
        summary = ImportSummary()
        if not draws:
            return summary

        region_ids: dict[str, Optional[int]] = {}
        province_ids: dict[tuple[str, int], Optional[int]] = {}

        async with await self._connection() as conn:
            for draw in draws:
                if not draw.results:
                    summary.record_skip(SkipReason.NO_RESULTS)
                    continue

                if draw.region_code not in region_ids:
                    region_ids[draw.region_code] = await conn.fetchval(REGION_ID_QUERY, draw.region_code)
                region_id = region_ids[draw.region_code]
                if region_id is None:
                    logger.warning("Unknown region code", region_code=draw.region_code)
                    summary.record_skip(SkipReason.UNKNOWN_REGION)
                    continue

                province_key = (draw.province_code, region_id)
                if province_key not in province_ids:
                    province_ids[province_key] = await conn.fetchval(
                        PROVINCE_ID_QUERY, draw.province_code, region_id
                    )
                province_id = province_ids[province_key]
                if province_id is None:
                    logger.warning(
                        "Unknown province code",
                        region_code=draw.region_code,
                        province_code=draw.province_code,
                    )
                    summary.record_skip(SkipReason.UNKNOWN_PROVINCE)
                    continue

                async with conn.transaction():
                    draw_id = await conn.fetchval(INSERT_DRAW_QUERY, draw.draw_date, province_id, region_id)
                    if draw_id is None:
                        draw_id = await conn.fetchval(EXISTING_DRAW_QUERY, draw.draw_date, province_id)

                    await conn.executemany(
                        UPSERT_RESULT_QUERY,
                        [
                            (draw_id, r.prize_code.value, r.prize_order, r.result_number)
                            for r in draw.results
                        ],
                    )
                summary.imported += 1

        logger.info(
            "Imported draws",
            imported=summary.imported,
            skipped=summary.skipped,
            skip_reasons=summary.skip_reasons or None,
        )
        return summary

    async def import_payload(self, payload: Any) -> ImportSummary:
        """
        Import an external ``{"draws": [...]}`` payload.

        Draws failing validation are counted as ``invalid`` skips.

        Raises:
            InvalidPayloadError: no non-empty ``draws`` list
        """
        raw_draws = payload.get("draws") if isinstance(payload, dict) else None
        if not isinstance(raw_draws, list) or not raw_draws:
            raise InvalidPayloadError("draws array required")

        valid: list[Draw] = []
        invalid = 0
        for raw in raw_draws:
            try:
                valid.append(Draw.model_validate(raw))
            except ValidationError as e:
                invalid += 1
                logger.warning("Rejected draw in payload", errors=e.error_count())

        summary = await self.import_results(valid)
        for _ in range(invalid):
            summary.record_skip(SkipReason.INVALID)
        return summary
