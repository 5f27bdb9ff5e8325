"""
Normalizer: turns raw per-game issue records into Draw models.

A raw issue looks like ``{"turnNum": "18/10/2026", "detail": "[\"12345\", ...]"}``
where ``detail`` is a JSON array with one comma-separated string per prize tier.
"""
import json
from datetime import date
from enum import Enum
from typing import Any, Iterable, Optional

import structlog
from pydantic import ValidationError

from lottery_ingest.models import (
    PRIZE_TIERS,
    Draw,
    DrawResult,
    index_for_prize_code,
    prize_code_for_index,
)
from lottery_ingest.models.catalog import get_game, province_for_game

logger = structlog.get_logger()


class IssueSkip(str, Enum):
    """Why a raw issue produced no draw."""
    NOT_A_RECORD = "not_a_record"
    BAD_DATE = "bad_date"
    FILTERED = "filtered"
    NO_RESULTS = "no_results"
    DUPLICATE = "duplicate"


def parse_turn_num(turn_num: Any) -> Optional[date]:
    """Parse a day/month/year string (``/`` or ``-`` separated)."""
    if not turn_num:
        return None
    parts = str(turn_num).strip().replace("-", "/").split("/")
    if len(parts) < 3:
        return None
    try:
        day, month, year = (int(p) for p in parts[:3])
        return date(year, month, day)
    except (ValueError, OverflowError):
        return None


def format_turn_num(draw_date: date) -> str:
    return draw_date.strftime("%d/%m/%Y")


def parse_detail(detail: Any) -> list[DrawResult]:
    """
    Decode a detail payload into results.

    Malformed payloads give an empty list. Entries that are not ASCII digit
    strings, or are too long to store, are skipped without affecting the rest of the tier or the issue.
    """
    if isinstance(detail, list):
        groups = detail
    else:
        try:
            groups = json.loads(detail or "[]")
        except (TypeError, ValueError):
            return []
    if not isinstance(groups, list):
        return []

    results: list[DrawResult] = []
    for index, value in enumerate(groups):
        prize_code = prize_code_for_index(index)
        if prize_code is None:
            break
        if value is None or value == "":
            continue
        for position, raw_number in enumerate(str(value).split(",")):
            number = raw_number.strip()
            if not number:
                continue
            try:
                result = DrawResult(
                    prize_code=prize_code,
                    prize_order=position + 1,
                    result_number=number,
                )
            except ValidationError:
                logger.debug("Skipping malformed tier entry", prize_code=prize_code.value, entry=number[:40])
                continue
            results.append(result)
    return results


def issues_to_draws(
    game_code: str,
    issues: Iterable[Any],
    filter_date: Optional[date] = None,
) -> list[Draw]:
    """
    Convert one game's raw issues into draws.

    Args:
        game_code: Source game identifier (e.g. ``miba``, ``tphc``)
        issues: Raw issue records from the history endpoint
        filter_date: Keep only issues drawn on this date

    Returns:
        At most one draw per (date, province), in input order
    """
    game = get_game(game_code)
    if game is None:
        logger.warning("Unknown game code", game_code=game_code)
        return []

    draws: list[Draw] = []
    seen: set[tuple[date, str]] = set()
    skipped: dict[str, int] = {}

    for issue in issues:
        draw, reason = _issue_to_draw(game_code, issue, filter_date, seen)
        if draw is None:
            skipped[reason.value] = skipped.get(reason.value, 0) + 1
            continue
        seen.add(draw.key)
        draws.append(draw)

    dropped = {k: v for k, v in skipped.items() if k != IssueSkip.FILTERED.value}
    if dropped:
        logger.debug("Dropped raw issues", game_code=game_code, reasons=dropped)

    return draws


def _issue_to_draw(
    game_code: str,
    issue: Any,
    filter_date: Optional[date],
    seen: set[tuple[date, str]],
) -> tuple[Optional[Draw], Optional[IssueSkip]]:
    if not isinstance(issue, dict):
        return None, IssueSkip.NOT_A_RECORD

    draw_date = parse_turn_num(issue.get("turnNum"))
    if draw_date is None:
        return None, IssueSkip.BAD_DATE
    if filter_date is not None and draw_date != filter_date:
        return None, IssueSkip.FILTERED

    province_code = province_for_game(game_code, draw_date)
    if (draw_date, province_code) in seen:
        return None, IssueSkip.DUPLICATE

    results = parse_detail(issue.get("detail"))
    if not results:
        return None, IssueSkip.NO_RESULTS

    game = get_game(game_code)
    return Draw(
        draw_date=draw_date,
        province_code=province_code,
        region_code=game.region.value,
        results=results,
    ), None


def results_to_detail(results: Iterable[Any]) -> str:
    """Render stored results back to the source's 9-slot detail string."""
    groups = ["" for _ in PRIZE_TIERS]
    ordered = sorted(results, key=lambda r: (_field(r, "prize_code"), _field(r, "prize_order")))
    for result in ordered:
        index = index_for_prize_code(str(_field(result, "prize_code")))
        if index is None:
            continue
        number = str(_field(result, "result_number"))
        groups[index] = f"{groups[index]},{number}" if groups[index] else number
    return json.dumps(groups, ensure_ascii=False)


def draws_to_issue_list(draws: Iterable[Any]) -> list[dict[str, str]]:
    """
    Encode draws as the history endpoint's issue list.

    Accepts Draw models or mappings with ``draw_date`` and ``results``.
    """
    issue_list = []
    for draw in draws:
        issue_list.append({
            "turnNum": format_turn_num(_field(draw, "draw_date")),
            "detail": results_to_detail(_field(draw, "results") or []),
        })
    return issue_list


def _field(obj: Any, name: str) -> Any:
    value = obj[name] if isinstance(obj, dict) else getattr(obj, name)
    return value.value if isinstance(value, Enum) else value
