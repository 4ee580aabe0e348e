"""Progression engine for questlog."""

from questlog.engine.leveling import (
    compute_leveling,
    cumulative_xp_for_level,
    level_for_total_xp,
    level_title,
    xp_progress,
    LevelingResult,
    XpProgress,
)
from questlog.engine.task_state import transition, apply_edits, detach_from_container

__all__ = [
    "compute_leveling",
    "cumulative_xp_for_level",
    "level_for_total_xp",
    "level_title",
    "xp_progress",
    "LevelingResult",
    "XpProgress",
    "transition",
    "apply_edits",
    "detach_from_container",
]
