"""Level tiers and stablecoin display helpers."""

from decimal import Decimal
from typing import Dict

from pydantic import BaseModel

from src.infra.config.settings import get_settings

settings = get_settings()


class LevelInfo(BaseModel):
    level_id: int
    name: str
    required_members: int
    contribution: int  # whole stablecoin units


LEVELS: Dict[int, LevelInfo] = {
    1: LevelInfo(level_id=1, name="Curioso", required_members=9, contribution=20),
    2: LevelInfo(level_id=2, name="Soñador", required_members=8, contribution=50),
    3: LevelInfo(level_id=3, name="Novato", required_members=7, contribution=100),
    4: LevelInfo(level_id=4, name="Aprendiz", required_members=6, contribution=250),
    5: LevelInfo(level_id=5, name="Asesor", required_members=5, contribution=500),
    6: LevelInfo(level_id=6, name="Maestro", required_members=4, contribution=1000),
    7: LevelInfo(level_id=7, name="Leyenda", required_members=3, contribution=2500),
}

MIN_LEVEL = 1
MAX_LEVEL = 7


def get_level(level_id: int) -> LevelInfo:
    try:
        return LEVELS[level_id]
    except KeyError:
        raise ValueError(f"Level must be between {MIN_LEVEL} and {MAX_LEVEL}, got {level_id}")


def to_display_amount(raw_amount: int, decimals: int = None) -> Decimal:
    """Smallest-unit stablecoin amount to whole units (6 decimals by default)"""
    if decimals is None:
        decimals = settings.STABLECOIN_DECIMALS
    return Decimal(int(raw_amount)) / (Decimal(10) ** decimals)


def to_raw_amount(display_amount, decimals: int = None) -> int:
    if decimals is None:
        decimals = settings.STABLECOIN_DECIMALS
    return int(Decimal(str(display_amount)) * (Decimal(10) ** decimals))
