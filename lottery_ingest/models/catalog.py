"""
Static game catalog: which source game feeds which province.

The North has a single game whose province rotates with the day of the week;
every other game is bound to one province.
"""
from dataclasses import dataclass
from datetime import date
from typing import Optional

from lottery_ingest.models import Region


@dataclass(frozen=True)
class Province:
    region: Region
    code: str
    name: str
    game_code: str


@dataclass(frozen=True)
class GameInfo:
    game_code: str
    region: Region
    province_code: Optional[str]  # None: resolved from the draw date


NORTH_GAME_CODE = "miba"

PROVINCES: tuple[Province, ...] = (
    # North: one game, six provinces in rotation
    Province(Region.NORTH, "TB", "Thái Bình", NORTH_GAME_CODE),
    Province(Region.NORTH, "HN", "Hà Nội", NORTH_GAME_CODE),
    Province(Region.NORTH, "QN", "Quảng Ninh", NORTH_GAME_CODE),
    Province(Region.NORTH, "BN", "Bắc Ninh", NORTH_GAME_CODE),
    Province(Region.NORTH, "HP", "Hải Phòng", NORTH_GAME_CODE),
    Province(Region.NORTH, "ND", "Nam Định", NORTH_GAME_CODE),
    # Central
    Province(Region.CENTRAL, "DN", "Đà Nẵng", "dana"),
    Province(Region.CENTRAL, "BDI", "Bình Định", "bidi"),
    Province(Region.CENTRAL, "DLK", "Đắk Lắk", "dalak"),
    Province(Region.CENTRAL, "DNO", "Đắk Nông", "dano"),
    Province(Region.CENTRAL, "GLA", "Gia Lai", "gila"),
    Province(Region.CENTRAL, "KHO", "Khánh Hòa", "khho"),
    Province(Region.CENTRAL, "KTU", "Kon Tum", "kotu"),
    Province(Region.CENTRAL, "NTH", "Ninh Thuận", "nith"),
    Province(Region.CENTRAL, "PYE", "Phú Yên", "phye"),
    Province(Region.CENTRAL, "QBI", "Quảng Bình", "qubi"),
    Province(Region.CENTRAL, "QNM", "Quảng Nam", "quna"),
    Province(Region.CENTRAL, "QNG", "Quảng Ngãi", "qung"),
    Province(Region.CENTRAL, "QTR", "Quảng Trị", "qutr"),
    Province(Region.CENTRAL, "THH", "Thừa Thiên Huế", "thth"),
    # South
    Province(Region.SOUTH, "AGI", "An Giang", "angi"),
    Province(Region.SOUTH, "BLI", "Bạc Liêu", "bali"),
    Province(Region.SOUTH, "BDU", "Bình Dương", "bidu"),
    Province(Region.SOUTH, "BPH", "Bình Phước", "biph"),
    Province(Region.SOUTH, "CMA", "Cà Mau", "cama"),
    Province(Region.SOUTH, "CTH", "Cần Thơ", "cath"),
    Province(Region.SOUTH, "DLT", "Đà Lạt", "dalat"),
    Province(Region.SOUTH, "DNA", "Đồng Nai", "dona"),
    Province(Region.SOUTH, "DTH", "Đồng Tháp", "doth"),
    Province(Region.SOUTH, "HGI", "Hậu Giang", "hagi"),
    Province(Region.SOUTH, "KGI", "Kiên Giang", "kigi"),
    Province(Region.SOUTH, "LAN", "Long An", "loan"),
    Province(Region.SOUTH, "STR", "Sóc Trăng", "sotr"),
    Province(Region.SOUTH, "TNI", "Tây Ninh", "tani"),
    Province(Region.SOUTH, "TGI", "Tiền Giang", "tigi"),
    Province(Region.SOUTH, "HCM", "TP. Hồ Chí Minh", "tphc"),
    Province(Region.SOUTH, "TVI", "Trà Vinh", "trvi"),
    Province(Region.SOUTH, "VLO", "Vĩnh Long", "vilo"),
    Province(Region.SOUTH, "VTA", "Vũng Tàu", "vuta"),
)


def _build_games() -> dict[str, GameInfo]:
    games: dict[str, GameInfo] = {
        NORTH_GAME_CODE: GameInfo(NORTH_GAME_CODE, Region.NORTH, None),
    }
    for province in PROVINCES:
        if province.region is Region.NORTH:
            continue
        games[province.game_code] = GameInfo(province.game_code, province.region, province.code)
    return games


GAMES: dict[str, GameInfo] = _build_games()

REGION_GAME_CODES: dict[Region, tuple[str, ...]] = {
    region: tuple(code for code, game in GAMES.items() if game.region is region)
    for region in Region
}

# Indexed Sunday..Saturday. Monday and Thursday are both Hà Nội.
NORTH_ROTATION: tuple[str, ...] = ("TB", "HN", "QN", "BN", "HN", "HP", "ND")


def north_province_for(draw_date: date) -> str:
    """Province hosting the North draw on the given day."""
    # date.weekday() is Monday=0; shift so Sunday=0
    return NORTH_ROTATION[(draw_date.weekday() + 1) % 7]


def get_game(game_code: str) -> Optional[GameInfo]:
    return GAMES.get(game_code)


def province_for_game(game_code: str, draw_date: date) -> Optional[str]:
    """Province code of a game's draw on a date, None for unknown games."""
    game = GAMES.get(game_code)
    if game is None:
        return None
    if game.province_code is None:
        return north_province_for(draw_date)
    return game.province_code
