"""Leveling curve for character stats.

Pure functions mapping an accumulated XP total to a level and progress within
that level. Level 1 starts at 0 XP; level L >= 2 starts at
LEVEL_XP_STEP * L * (L + 1) / 2 (300, 600, 1000, 1500, ...).

All functions are deterministic and never touch the database.
"""

from dataclasses import dataclass
from math import isqrt
from typing import List, Tuple

from questlog.errors import ValidationError
from questlog.models.constants import LEVEL_XP_STEP, MIN_LEVEL
from questlog.validation import require_int


LEVEL_TITLES = (
    "Novice",
    "Apprentice",
    "Initiate",
    "Adept",
    "Journeyman",
    "Expert",
    "Veteran",
    "Master",
    "Grandmaster",
    "Legend",
)


@dataclass(frozen=True)
class XpProgress:
    """Where a total sits inside its level.

    current_level_xp is the XP earned since the level started;
    xp_in_current_level is the size of the whole level.
    """

    current_level_xp: int
    xp_in_current_level: int
    xp_to_next_level: int
    progress_percent: int


@dataclass(frozen=True)
class LevelingResult:
    """Full leveling breakdown for one XP total."""

    level: int
    current_level_xp: int
    xp_in_current_level: int
    xp_to_next_level: int
    progress_percent: int


def cumulative_xp_for_level(level: int) -> int:
    """Total XP needed to reach the start of ``level``."""
    level = require_int(level, "level")
    if level < MIN_LEVEL:
        raise ValidationError(f"level must be >= {MIN_LEVEL}", field="level")
    if level == MIN_LEVEL:
        return 0
    return LEVEL_XP_STEP * level * (level + 1) // 2


def _require_total(total_xp: int) -> int:
    total_xp = require_int(total_xp, "total_xp")
    if total_xp < 0:
        raise ValidationError("total_xp must be non-negative", field="total_xp")
    return total_xp


def level_for_total_xp(total_xp: int) -> int:
    """Highest level whose cumulative threshold is <= ``total_xp``.

    Solves L(L+1) <= 2 * total / LEVEL_XP_STEP with an integer square root,
    so it is exact for arbitrarily large totals.
    """
    total_xp = _require_total(total_xp)
    q = total_xp // (LEVEL_XP_STEP // 2)
    level = (isqrt(4 * q + 1) - 1) // 2
    return max(MIN_LEVEL, level)


def xp_progress(total_xp: int) -> XpProgress:
    """Progress of ``total_xp`` inside its current level."""
    level = level_for_total_xp(total_xp)
    start = cumulative_xp_for_level(level)
    span = cumulative_xp_for_level(level + 1) - start
    xp_in_level = total_xp - start
    # Half-up rounding: 50/400 is 12.5% -> 13
    percent = (200 * xp_in_level + span) // (2 * span)
    return XpProgress(
        current_level_xp=xp_in_level,
        xp_in_current_level=span,
        xp_to_next_level=span - xp_in_level,
        progress_percent=percent,
    )


def compute_leveling(total_xp: int) -> LevelingResult:
    """Level and in-level progress for an accumulated XP total.

    Args:
        total_xp: Accumulated XP (non-negative integer)

    Returns:
        LevelingResult with level, XP earned inside the level (current_level_xp),
        the level's span (xp_in_current_level), XP still needed, and a rounded
        percentage

    Raises:
        ValidationError: If total_xp is negative or not an integer
    """
    progress = xp_progress(total_xp)
    return LevelingResult(
        level=level_for_total_xp(total_xp),
        current_level_xp=progress.current_level_xp,
        xp_in_current_level=progress.xp_in_current_level,
        xp_to_next_level=progress.xp_to_next_level,
        progress_percent=progress.progress_percent,
    )


def level_title(category: str, level: int) -> str:
    """Deterministic display title for a stat at a level (e.g. "Fitness Adept")."""
    level = max(MIN_LEVEL, require_int(level, "level"))
    index = min(level - 1, len(LEVEL_TITLES) - 1)
    return f"{category} {LEVEL_TITLES[index]}"


def level_requirements(max_level: int) -> List[Tuple[int, int, int]]:
    """Rows of (level, total_xp, xp_to_reach) for levels 1..max_level.

    ``xp_to_reach`` is the XP needed from the previous level's threshold.
    """
    max_level = require_int(max_level, "max_level")
    if max_level < MIN_LEVEL:
        raise ValidationError(f"max_level must be >= {MIN_LEVEL}", field="max_level")
    rows: List[Tuple[int, int, int]] = []
    previous = 0
    for level in range(MIN_LEVEL, max_level + 1):
        total = cumulative_xp_for_level(level)
        rows.append((level, total, total - previous))
        previous = total
    return rows
