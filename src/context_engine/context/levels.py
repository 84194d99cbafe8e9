"""
Context levels and their size ceilings.
"""

from dataclasses import dataclass
from enum import Enum


class ContextLevel(str, Enum):
    """Fixed-size context levels, smallest to largest."""

    LIGHT = "light"
    RECENT = "recent"
    SELECTIVE = "selective"
    FULL = "full"

    @property
    def spec(self) -> "LevelSpec":
        return LEVEL_SPECS[self]


@dataclass(frozen=True)
class LevelSpec:
    """Token and character ceilings for a context level."""

    level: ContextLevel
    max_tokens: int
    max_chars: int
    compression_ratio: float
    description: str


LEVEL_SPECS: dict[ContextLevel, LevelSpec] = {
    ContextLevel.LIGHT: LevelSpec(
        level=ContextLevel.LIGHT,
        max_tokens=50,
        max_chars=200,
        compression_ratio=0.9,
        description="Profile essentials and current standing",
    ),
    ContextLevel.RECENT: LevelSpec(
        level=ContextLevel.RECENT,
        max_tokens=150,
        max_chars=500,
        compression_ratio=0.8,
        description="Adds a 7-day activity summary",
    ),
    ContextLevel.SELECTIVE: LevelSpec(
        level=ContextLevel.SELECTIVE,
        max_tokens=300,
        max_chars=1000,
        compression_ratio=0.7,
        description="Adds performance metrics, strengths, weaknesses and memory highlights",
    ),
    ContextLevel.FULL: LevelSpec(
        level=ContextLevel.FULL,
        max_tokens=500,
        max_chars=2000,
        compression_ratio=0.6,
        description="Everything plus detailed preferences and cross-referenced memories",
    ),
}
