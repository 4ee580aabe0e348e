"""Task creation factory for questlog.

This module centralizes task creation logic so every subsystem (AI generator,
quests, experiments, ad-hoc entry, external sync, plain todos) produces tasks
that satisfy the same invariants.
"""

import uuid
from datetime import datetime
from typing import Dict, Any, Iterable, List, Optional

from questlog.errors import ValidationError
from questlog.models.task import Task, TaskSource, TaskStatus, OWNED_SOURCES, UNOWNED_SOURCES
from questlog.models.constants import DEFAULT_ESTIMATED_XP, MAX_ESTIMATED_XP
from questlog.validation import require_text, to_utc_naive


def normalize_target_stats(target_stats: Optional[Iterable[str]]) -> List[str]:
    """Deduplicate stat categories while preserving order.

    Args:
        target_stats: Stat category names, possibly with duplicates or blanks

    Returns:
        Ordered list of unique, stripped category names
    """
    if not target_stats:
        return []
    if isinstance(target_stats, str):
        raise ValidationError("target_stats must be a list of stat categories", field="target_stats")
    seen = set()
    unique: List[str] = []
    for category in target_stats:
        if not isinstance(category, str) or not category.strip():
            raise ValidationError("Stat categories must be non-empty strings", field="target_stats")
        name = category.strip()
        if name not in seen:
            seen.add(name)
            unique.append(name)
    return unique


def create_task_defaults() -> Dict[str, Any]:
    """Get default task values as a dictionary.

    Returns:
        Dictionary with default task field values using constants
    """
    return {
        "status": TaskStatus.PENDING,
        "description": None,
        "target_stats": [],
        "estimated_xp": DEFAULT_ESTIMATED_XP,
        "due_date": None,
    }


def _validate_source(source: TaskSource, source_id: Optional[str], target_stats: List[str]) -> None:
    if source in UNOWNED_SOURCES and source_id is not None:
        raise ValidationError(f"{source.value} tasks cannot reference a source record", field="source_id")
    if source in OWNED_SOURCES and not source_id:
        raise ValidationError(f"{source.value} tasks require a source_id", field="source_id")
    if source == TaskSource.AD_HOC and len(target_stats) != 1:
        raise ValidationError("Ad-hoc tasks must target exactly one stat category", field="target_stats")


def create_task_base(
    user_id: str,
    source: Any,
    title: str,
    source_id: Optional[str] = None,
    description: Optional[str] = None,
    target_stats: Optional[Iterable[str]] = None,
    estimated_xp: Optional[int] = None,
    due_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Task:
    """Create a pending task with defaults, allowing overrides.

    Args:
        user_id: User ID who owns this task (required)
        source: Task source (TaskSource or its string value)
        title: Task title (required, non-empty)
        source_id: Owning quest/experiment/external source id
        description: Task description
        target_stats: Stat categories the task can award XP to
        estimated_xp: Author-time XP estimate (non-negative)
        due_date: Optional due date
        now: Creation timestamp (defaults to utcnow)

    Returns:
        Task object with defaults applied

    Raises:
        ValidationError: If the source/source_id/target_stats combination is invalid
    """
    try:
        source = TaskSource(source)
    except ValueError:
        raise ValidationError(f"Unknown task source: {source}", field="source")

    title = require_text(title, "title")
    stats = normalize_target_stats(target_stats)
    _validate_source(source, source_id, stats)

    if estimated_xp is not None and (isinstance(estimated_xp, bool) or not isinstance(estimated_xp, int) or estimated_xp < 0):
        raise ValidationError("estimated_xp must be a non-negative integer", field="estimated_xp")
    if estimated_xp is not None and estimated_xp > MAX_ESTIMATED_XP:
        raise ValidationError(f"estimated_xp must be at most {MAX_ESTIMATED_XP}", field="estimated_xp")
    due_date = to_utc_naive(due_date, "due_date")

    now = now or datetime.utcnow()
    defaults = create_task_defaults()

    return Task(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=title,
        description=description if description is not None else defaults["description"],
        source=source,
        source_id=source_id,
        target_stats=stats,
        estimated_xp=estimated_xp if estimated_xp is not None else defaults["estimated_xp"],
        status=defaults["status"],
        due_date=due_date if due_date is not None else defaults["due_date"],
        completed_at=None,
        created_at=now,
        updated_at=now,
    )
