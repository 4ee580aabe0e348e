"""Completion processor: turns a task completion into XP on character stats.

A completion is all-or-nothing. Every precondition is checked before the
first write, and the claim on the task, the stat updates and the completion
row share one transaction that is rolled back on any failure.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from questlog.errors import NotFoundError, StateConflictError, ValidationError
from questlog.models.task import Task, TaskCompletion, TaskSource, TaskStatus
from questlog.models.constants import HISTORY_DEFAULT_LIMIT, HISTORY_MAX_LIMIT
from questlog.database.repository import TaskRepository
from questlog.database.character_stat_repository import CharacterStatRepository
from questlog.database.task_completion_repository import TaskCompletionRepository
from questlog.engine.task_state import transition
from questlog.validation import require_int, require_uuid

logger = logging.getLogger(__name__)


@dataclass
class XpResult:
    """Effect of a completion on one stat."""

    stat_category: str
    old_level: int
    new_level: int
    leveled_up: bool
    xp_added: int
    new_total_xp: int
    level_title: Optional[str] = None


@dataclass
class CompletionResult:
    """Outcome of complete_task."""

    task: Task
    completion: TaskCompletion
    xp_results: List[XpResult] = field(default_factory=list)
    feedback_required: bool = False


def _validate_awards(stat_awards: Optional[Dict[str, int]]) -> Dict[str, int]:
    if stat_awards is None:
        return {}
    if not isinstance(stat_awards, dict):
        raise ValidationError("stat_awards must be a mapping of stat category to XP", field="stat_awards")
    awards: Dict[str, int] = {}
    for category, delta in stat_awards.items():
        if not isinstance(category, str) or not category.strip():
            raise ValidationError("Stat categories must be non-empty strings", field="stat_awards")
        awards[category] = require_int(delta, f"stat_awards[{category}]")
    return awards


def complete_task(
    db: Session,
    user_id: str,
    task_id: str,
    actual_xp: int,
    stat_awards: Optional[Dict[str, int]] = None,
    feedback: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CompletionResult:
    """Complete a pending task and apply its stat awards atomically.

    Args:
        db: Database session (the transaction boundary)
        user_id: Caller; must own the task
        task_id: Task to complete
        actual_xp: XP actually earned (any sign, recorded on the completion)
        stat_awards: Stat category -> XP delta; every key must be an existing stat
        feedback: Optional completion feedback
        now: Completion time (defaults to utcnow)

    Returns:
        CompletionResult with the completed task, the completion record and
        one XpResult per awarded stat

    Raises:
        ValidationError: Malformed ids/XP, or an unknown stat category
        NotFoundError: Task missing or owned by someone else, or no character
        StateConflictError: Task is not pending (including a lost race)
    """
    user_id = require_uuid(user_id, "user_id")
    task_id = require_uuid(task_id, "task_id")
    actual_xp = require_int(actual_xp, "actual_xp")
    awards = _validate_awards(stat_awards)
    now = now or datetime.utcnow()

    tasks = TaskRepository(db)
    stats_repo = CharacterStatRepository(db)
    completions = TaskCompletionRepository(db)

    task = tasks.get(user_id, task_id)
    if not task:
        raise NotFoundError("Task not found", field="task_id")
    if task.status != TaskStatus.PENDING.value:
        raise StateConflictError(f"Task is already {task.status}", field="status")
    transition(task, TaskStatus.COMPLETED, now)

    character = None
    if awards:
        character = stats_repo.get_character_row(user_id)
        if not character:
            raise NotFoundError("Character not found", field="user_id")
        known = stats_repo.stats_by_category(character.id)
        unknown = [category for category in awards if category not in known]
        if unknown:
            raise ValidationError(f"Unknown stat category: {', '.join(unknown)}", field="stat_awards")

    xp_results: List[XpResult] = []
    try:
        if tasks.claim_pending(user_id, task_id, TaskStatus.COMPLETED, now) == 0:
            raise StateConflictError("Task is no longer pending", field="status")

        stat_rows = stats_repo.stats_by_category(character.id, for_update=True) if character else {}

        for category, delta in awards.items():
            stat = stat_rows[category]
            old_level = stat.current_level
            stats_repo.set_total_xp(stat, stat.total_xp + delta, now)
            xp_results.append(XpResult(
                stat_category=category,
                old_level=old_level,
                new_level=stat.current_level,
                leveled_up=stat.current_level > old_level,
                xp_added=delta,
                new_total_xp=stat.total_xp,
                level_title=stat.level_title,
            ))

        completion = TaskCompletion(
            id=str(uuid.uuid4()),
            task_id=task_id,
            user_id=user_id,
            actual_xp=actual_xp,
            stat_awards=awards,
            feedback=feedback,
            completed_at=now,
        )
        completions.add(completion)
        db.commit()
    except Exception as e:
        db.rollback()
        if not isinstance(e, StateConflictError):
            logger.error(f"Failed to complete task {task_id}: {type(e).__name__}: {str(e)}")
        raise

    for result in xp_results:
        if result.leveled_up:
            logger.info(f"Stat {result.stat_category} reached level {result.new_level} for user {user_id}")
    logger.debug(f"Completed task {task_id} with {actual_xp} XP")

    return CompletionResult(
        task=tasks.get(user_id, task_id),
        completion=completion,
        xp_results=xp_results,
        feedback_required=task.source == TaskSource.AI.value,
    )


def get_completion(db: Session, user_id: str, task_id: str) -> TaskCompletion:
    """Completion record of one of the user's tasks."""
    user_id = require_uuid(user_id, "user_id")
    task_id = require_uuid(task_id, "task_id")
    completion = TaskCompletionRepository(db).get_for_task(user_id, task_id)
    if not completion:
        raise NotFoundError("Completion not found", field="task_id")
    return completion


def list_completed_tasks(
    db: Session,
    user_id: str,
    limit: int = HISTORY_DEFAULT_LIMIT,
    offset: int = 0,
) -> Tuple[List[Tuple[Task, TaskCompletion]], int]:
    """Completed tasks with their completion records (newest first) and the total count."""
    user_id = require_uuid(user_id, "user_id")
    limit = require_int(limit, "limit")
    offset = require_int(offset, "offset")
    if limit < 1 or limit > HISTORY_MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {HISTORY_MAX_LIMIT}", field="limit")
    if offset < 0:
        raise ValidationError("offset must be non-negative", field="offset")
    repo = TaskCompletionRepository(db)
    return repo.list_for_user(user_id, limit, offset), repo.count_for_user(user_id)
