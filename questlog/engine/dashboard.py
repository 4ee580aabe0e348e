"""Dashboard aggregation for questlog.

Collects the tasks of every dashboard source (ai, quest, experiment, todo,
external) into one ordered, paginated view with per-source metadata and a
summary. Read-only.

Ordering is a three-bucket stable sort:
1. Overdue pending tasks, earliest due date first
2. Other tasks with a due date, soonest first
3. Tasks without a due date, oldest first
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from questlog.errors import ValidationError
from questlog.models.task import Task, TaskSource, TaskStatus, DASHBOARD_SOURCES
from questlog.models.container import ContainerStatus
from questlog.models.constants import DASHBOARD_DEFAULT_LIMIT, DASHBOARD_MAX_LIMIT
from questlog.database.repository import TaskRepository
from questlog.database.container_repository import ContainerRepository
from questlog.database.external_source_repository import ExternalSourceRepository
from questlog.database.task_completion_repository import TaskCompletionRepository
from questlog.validation import require_int, require_uuid

logger = logging.getLogger(__name__)

STATUS_FILTERS = tuple(s.value for s in TaskStatus) + ("all",)

BUCKET_OVERDUE = 0
BUCKET_DATED = 1
BUCKET_UNDATED = 2


@dataclass
class DashboardTask:
    """A task as shown on the dashboard, with its source metadata."""

    task: Task
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DashboardSummary:
    total_tasks: int = 0
    pending_tasks: int = 0
    completed_tasks: int = 0
    skipped_tasks: int = 0
    failed_tasks: int = 0
    total_estimated_xp: int = 0
    earned_xp: int = 0
    tasks_by_source: Dict[str, int] = field(default_factory=dict)
    tasks_by_status: Dict[str, int] = field(default_factory=dict)


@dataclass
class Pagination:
    total: int
    limit: int
    offset: int
    has_more: bool


@dataclass
class DashboardResult:
    tasks: List[DashboardTask]
    summary: DashboardSummary
    pagination: Pagination


def dashboard_sort_key(task: Task, now: datetime) -> Tuple:
    """Sort key placing a task in its bucket.

    Undated tasks are never compared by due date, so "no due date" can not be
    confused with "due far in the future".
    """
    if task.due_date is not None:
        if task.status == TaskStatus.PENDING.value and task.due_date < now:
            return (BUCKET_OVERDUE, task.due_date)
        return (BUCKET_DATED, task.due_date)
    return (BUCKET_UNDATED, task.created_at)


def sort_dashboard_tasks(tasks: List[Task], now: datetime) -> List[Task]:
    """Stable three-bucket ordering (see module docstring)."""
    return sorted(tasks, key=lambda t: dashboard_sort_key(t, now))


def _validate_params(status: Optional[str], limit: int, offset: int) -> Optional[str]:
    if status is not None and status not in STATUS_FILTERS:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(STATUS_FILTERS)}", field="status"
        )
    limit = require_int(limit, "limit")
    offset = require_int(offset, "offset")
    if limit < 1 or limit > DASHBOARD_MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {DASHBOARD_MAX_LIMIT}", field="limit")
    if offset < 0:
        raise ValidationError("offset must be non-negative", field="offset")
    return None if status in (None, "all") else status


def summarize(tasks: List[Task], earned_by_task: Dict[str, int]) -> DashboardSummary:
    """Summary over the source-filtered task set."""
    by_status = Counter(task.status for task in tasks)
    return DashboardSummary(
        total_tasks=len(tasks),
        pending_tasks=by_status.get(TaskStatus.PENDING.value, 0),
        completed_tasks=by_status.get(TaskStatus.COMPLETED.value, 0),
        skipped_tasks=by_status.get(TaskStatus.SKIPPED.value, 0),
        failed_tasks=by_status.get(TaskStatus.FAILED.value, 0),
        total_estimated_xp=sum(task.estimated_xp for task in tasks),
        earned_xp=sum(earned_by_task.get(task.id, 0) for task in tasks),
        tasks_by_source=dict(Counter(task.source for task in tasks)),
        tasks_by_status=dict(by_status),
    )


def _quest_metadata(quest) -> Dict[str, Any]:
    return {
        "type": TaskSource.QUEST.value,
        "title": quest.title,
        "status": quest.status,
        "start_date": quest.start_date,
        "end_date": quest.end_date,
        "goal_description": quest.goal_description,
    }


def _experiment_metadata(experiment, now: datetime) -> Dict[str, Any]:
    metadata = {
        "type": TaskSource.EXPERIMENT.value,
        "title": experiment.title,
        "status": experiment.status,
        "start_date": experiment.start_date,
        "end_date": experiment.end_date,
        "duration": experiment.duration,
        "hypothesis": experiment.hypothesis,
    }
    if experiment.status == ContainerStatus.ACTIVE.value and experiment.end_date is not None:
        metadata["days_remaining"] = max(0, (experiment.end_date - now).days)
    return metadata


def _external_metadata(source_row) -> Dict[str, Any]:
    return {
        "source_info": {"name": source_row.name, "type": source_row.type},
        "is_external": True,
        "can_modify": False,
    }


def attach_metadata(db: Session, user_id: str, tasks: List[Task], now: datetime) -> List[DashboardTask]:
    """Pair each task with metadata about its owning quest/experiment/source."""
    ids_by_source: Dict[str, List[str]] = {}
    for task in tasks:
        if task.source_id:
            ids_by_source.setdefault(task.source, []).append(task.source_id)

    containers = ContainerRepository(db)
    quests = containers.get_many(TaskSource.QUEST.value, user_id, ids_by_source.get(TaskSource.QUEST.value, []))
    experiments = containers.get_many(
        TaskSource.EXPERIMENT.value, user_id, ids_by_source.get(TaskSource.EXPERIMENT.value, [])
    )
    sources = ExternalSourceRepository(db).get_many(user_id, ids_by_source.get(TaskSource.EXTERNAL.value, []))

    out: List[DashboardTask] = []
    for task in tasks:
        metadata: Dict[str, Any] = {}
        if task.source == TaskSource.QUEST.value and task.source_id in quests:
            metadata = _quest_metadata(quests[task.source_id])
        elif task.source == TaskSource.EXPERIMENT.value and task.source_id in experiments:
            metadata = _experiment_metadata(experiments[task.source_id], now)
        elif task.source == TaskSource.EXTERNAL.value and task.source_id in sources:
            metadata = _external_metadata(sources[task.source_id])
        out.append(DashboardTask(task=task, metadata=metadata))
    return out


def get_dashboard(
    db: Session,
    user_id: str,
    status: Optional[str] = None,
    limit: int = DASHBOARD_DEFAULT_LIMIT,
    offset: int = 0,
    now: Optional[datetime] = None,
) -> DashboardResult:
    """Build the user's dashboard.

    Args:
        db: Database session
        user_id: Whose tasks to show
        status: pending/completed/skipped/failed, or all (None means all)
        limit: Page size (1..100)
        offset: Number of ordered tasks to skip
        now: Reference time for the overdue bucket (defaults to utcnow)

    Returns:
        DashboardResult with the page of tasks, a summary over all dashboard
        tasks (ignoring the status filter) and pagination info

    Raises:
        ValidationError: Invalid user id, status, limit or offset
    """
    user_id = require_uuid(user_id, "user_id")
    status_filter = _validate_params(status, limit, offset)
    now = now or datetime.utcnow()

    tasks = TaskRepository(db).get_all(user_id, sources=DASHBOARD_SOURCES)
    earned = TaskCompletionRepository(db).earned_xp_by_task(
        task.id for task in tasks if task.status == TaskStatus.COMPLETED.value
    )
    summary = summarize(tasks, earned)

    if status_filter is not None:
        tasks = [task for task in tasks if task.status == status_filter]
    ordered = sort_dashboard_tasks(tasks, now)
    page = ordered[offset:offset + limit]

    logger.debug(f"Dashboard for user {user_id}: {len(page)} of {len(ordered)} tasks")
    return DashboardResult(
        tasks=attach_metadata(db, user_id, page, now),
        summary=summary,
        pagination=Pagination(
            total=len(ordered),
            limit=limit,
            offset=offset,
            has_more=offset + len(page) < len(ordered),
        ),
    )
