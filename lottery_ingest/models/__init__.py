"""
Pydantic models and enumerations for lottery draw data.
Provides type-safe schemas shared by the sources, the normalizer and the writer.
"""
from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Region(str, Enum):
    """The three national draw zones, valued by their stored region code."""
    NORTH = "MB"
    CENTRAL = "MT"
    SOUTH = "MN"

    @property
    def slug(self) -> str:
        """Lower-case short name used by the sources and the trigger surface."""
        return self.value.lower()

    @classmethod
    def from_slug(cls, value: str) -> "Region":
        """Resolve 'mb' / 'MT' / 'mn' style identifiers, raising ValueError otherwise."""
        normalized = (value or "").strip().upper()
        for region in cls:
            if region.value == normalized:
                return region
        raise ValueError(f"region must be one of mb | mt | mn, got {value!r}")


class PrizeCode(str, Enum):
    """Prize tiers in the order the sources publish them."""
    DB = "DB"   # special prize
    G1 = "G1"
    G2 = "G2"
    G3 = "G3"
    G4 = "G4"
    G5 = "G5"
    G6 = "G6"
    G7 = "G7"
    G8 = "G8"


PRIZE_TIERS: tuple[PrizeCode, ...] = tuple(PrizeCode)


def prize_code_for_index(index: int) -> Optional[PrizeCode]:
    """Map a detail-array index to its tier, None when outside the table."""
    if 0 <= index < len(PRIZE_TIERS):
        return PRIZE_TIERS[index]
    return None


def index_for_prize_code(code: str) -> Optional[int]:
    """Inverse of prize_code_for_index for stored codes."""
    for index, tier in enumerate(PRIZE_TIERS):
        if tier.value == code:
            return index
    return None


@dataclass(frozen=True)
class RegionSchedule:
    """Daily timetable of one region."""
    region: Region
    label: str
    start_at: time          # poll start, two minutes before the draw
    draw_start: time
    draw_end: time
    sort: int
    primary_script: str

    @property
    def open_time(self) -> str:
        return self.draw_start.strftime("%H:%M:%S")


REGION_SCHEDULES: dict[Region, RegionSchedule] = {
    Region.SOUTH: RegionSchedule(
        region=Region.SOUTH,
        label="Miền Nam",
        start_at=time(16, 13),
        draw_start=time(16, 15),
        draw_end=time(16, 35),
        sort=30,
        primary_script="js_m1.js",
    ),
    Region.CENTRAL: RegionSchedule(
        region=Region.CENTRAL,
        label="Miền Trung",
        start_at=time(17, 13),
        draw_start=time(17, 15),
        draw_end=time(17, 35),
        sort=20,
        primary_script="js_m3.js",
    ),
    Region.NORTH: RegionSchedule(
        region=Region.NORTH,
        label="Miền Bắc",
        start_at=time(18, 13),
        draw_start=time(18, 15),
        draw_end=time(18, 35),
        sort=10,
        primary_script="js_m2.js",
    ),
}

# Before this hour no region can have drawn today
EARLIEST_DRAW_HOUR = min(s.draw_start.hour for s in REGION_SCHEDULES.values())


# =============================================================================
# DRAW MODELS
# =============================================================================

class DrawResult(BaseModel):
    """One number of one prize tier."""
    model_config = ConfigDict(str_strip_whitespace=True)

    prize_code: PrizeCode
    prize_order: int = Field(default=1, ge=1)
    result_number: str = Field(min_length=1, max_length=20)

    @field_validator("result_number", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> Any:
        # Numbers must stay text so leading zeros survive
        if isinstance(v, int) and not isinstance(v, bool):
            raise ValueError("result_number must be a digit string, not a number")
        return v

    @field_validator("result_number")
    @classmethod
    def _digits_only(cls, v: str) -> str:
        if not (v.isascii() and v.isdigit()):
            raise ValueError(f"result_number must contain digits 0-9 only: {v!r}")
        return v


class Draw(BaseModel):
    """A single province's result for a single day."""
    model_config = ConfigDict(str_strip_whitespace=True)

    draw_date: date
    province_code: str = Field(min_length=1, max_length=20)
    region_code: str = Field(min_length=1, max_length=10)
    results: list[DrawResult] = Field(default_factory=list)

    @property
    def key(self) -> tuple[date, str]:
        return (self.draw_date, self.province_code)


class SkipReason(str, Enum):
    """Why the writer did not store a draw."""
    UNKNOWN_REGION = "unknown_region"
    UNKNOWN_PROVINCE = "unknown_province"
    NO_RESULTS = "no_results"
    INVALID = "invalid"


class ImportSummary(BaseModel):
    """Outcome of one import batch."""
    imported: int = 0
    skipped: int = 0
    skip_reasons: dict[str, int] = Field(default_factory=dict)

    def record_skip(self, reason: SkipReason) -> None:
        self.skipped += 1
        self.skip_reasons[reason.value] = self.skip_reasons.get(reason.value, 0) + 1


# =============================================================================
# SOURCE OUTCOMES
# =============================================================================

class SourceStatus(str, Enum):
    """Outcome of a single source fetch."""
    OK = "ok"
    NOT_AVAILABLE = "not_available"
    UNREACHABLE = "unreachable"
    PARSE_ERROR = "parse_error"
    UNSUPPORTED = "unsupported"


@dataclass
class SourceResult:
    """Draws returned by a source plus the reason when there are none."""
    source: str
    status: SourceStatus
    draws: list[Draw] = field(default_factory=list)
    failed_games: list[str] = field(default_factory=list)
    detail: Optional[str] = None

    @property
    def has_draws(self) -> bool:
        return bool(self.draws)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "status": self.status.value,
            "draws": len(self.draws),
            "failed_games": list(self.failed_games),
            "detail": self.detail,
        }


__all__ = [
    "Region",
    "PrizeCode",
    "PRIZE_TIERS",
    "prize_code_for_index",
    "index_for_prize_code",
    "RegionSchedule",
    "REGION_SCHEDULES",
    "EARLIEST_DRAW_HOUR",
    "DrawResult",
    "Draw",
    "SkipReason",
    "ImportSummary",
    "SourceStatus",
    "SourceResult",
]
