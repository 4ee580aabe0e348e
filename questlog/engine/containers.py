"""Quests and experiments: creation, derived progress, and deletion.

Progress is never stored; it is computed from the container's tasks and their
completions on every read. Deleting a container detaches its tasks to ad-hoc
instead of deleting them, so completion history survives.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy.orm import Session

from questlog.errors import NotFoundError, ValidationError
from questlog.models.container import ContainerKind, ContainerProgress, ContainerStatus, Experiment, Quest
from questlog.models.task import TaskStatus
from questlog.database.repository import TaskRepository
from questlog.database.container_repository import ContainerRepository
from questlog.database.task_completion_repository import TaskCompletionRepository
from questlog.engine.task_state import detach_from_container
from questlog.validation import require_text, require_uuid, to_utc_naive

logger = logging.getLogger(__name__)


def _kind(kind) -> ContainerKind:
    try:
        return ContainerKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown container kind: {kind}", field="kind")


def _status(status) -> str:
    try:
        return ContainerStatus(status).value
    except ValueError:
        raise ValidationError(f"Unknown container status: {status}", field="status")


def create_quest(
    db: Session,
    user_id: str,
    title: str,
    description: Optional[str] = None,
    goal_description: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    status: str = ContainerStatus.ACTIVE.value,
) -> Quest:
    user_id = require_uuid(user_id, "user_id")
    now = datetime.utcnow()
    start_date = to_utc_naive(start_date, "start_date") or now
    end_date = to_utc_naive(end_date, "end_date")
    if end_date is not None and end_date < start_date:
        raise ValidationError("end_date must not be before start_date", field="end_date")
    quest = Quest(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=require_text(title, "title"),
        description=description,
        goal_description=goal_description,
        start_date=start_date,
        end_date=end_date,
        status=_status(status),
        created_at=now,
    )
    return ContainerRepository(db).create(ContainerKind.QUEST, quest)


def create_experiment(
    db: Session,
    user_id: str,
    title: str,
    duration: int,
    description: Optional[str] = None,
    hypothesis: Optional[str] = None,
    start_date: Optional[datetime] = None,
    status: str = ContainerStatus.ACTIVE.value,
) -> Experiment:
    """Create an experiment; its end date is start_date + duration days."""
    user_id = require_uuid(user_id, "user_id")
    if isinstance(duration, bool) or not isinstance(duration, int) or duration < 1:
        raise ValidationError("duration must be a positive number of days", field="duration")
    now = datetime.utcnow()
    start_date = to_utc_naive(start_date, "start_date") or now
    experiment = Experiment(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=require_text(title, "title"),
        description=description,
        hypothesis=hypothesis,
        duration=duration,
        start_date=start_date,
        end_date=start_date + timedelta(days=duration),
        status=_status(status),
        created_at=now,
    )
    return ContainerRepository(db).create(ContainerKind.EXPERIMENT, experiment)


def get_container(db: Session, user_id: str, kind, container_id: str) -> Union[Quest, Experiment]:
    kind = _kind(kind)
    user_id = require_uuid(user_id, "user_id")
    container_id = require_uuid(container_id, f"{kind.value}_id")
    container = ContainerRepository(db).get(kind, user_id, container_id)
    if not container:
        raise NotFoundError(f"{kind.value.capitalize()} not found", field=f"{kind.value}_id")
    return container


def container_progress(db: Session, user_id: str, kind, container_id: str) -> ContainerProgress:
    """Task counts and XP of a container, derived from its tasks and completions."""
    container = get_container(db, user_id, kind, container_id)
    tasks = TaskRepository(db).get_by_source(container.user_id, _kind(kind).value, container.id)
    completed = [task for task in tasks if task.status == TaskStatus.COMPLETED.value]
    earned = TaskCompletionRepository(db).earned_xp_by_task(task.id for task in completed)
    total = len(tasks)
    return ContainerProgress(
        total_tasks=total,
        completed_tasks=len(completed),
        pending_tasks=sum(1 for task in tasks if task.status == TaskStatus.PENDING.value),
        completion_rate=round(100 * len(completed) / total) if total else 0,
        estimated_xp=sum(task.estimated_xp for task in tasks),
        earned_xp=sum(earned.values()),
    )


def delete_container(db: Session, user_id: str, kind, container_id: str) -> int:
    """Delete a quest or experiment, detaching its tasks to ad-hoc.

    The detach and the delete commit together. Completion rows are not
    touched. Returns the number of detached tasks.
    """
    kind = _kind(kind)
    user_id = require_uuid(user_id, "user_id")
    container_id = require_uuid(container_id, f"{kind.value}_id")
    containers = ContainerRepository(db)
    tasks = TaskRepository(db)

    row = containers.get_row(kind, user_id, container_id)
    if not row:
        raise NotFoundError(f"{kind.value.capitalize()} not found", field=f"{kind.value}_id")

    owned = tasks.get_by_source(user_id, kind.value, container_id, include_deleted=True)
    try:
        now = datetime.utcnow()
        for task in owned:
            tasks.update(detach_from_container(task, now), commit=False, include_deleted=True)
        db.delete(row)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to delete {kind.value} {container_id}: {type(e).__name__}: {str(e)}")
        raise

    logger.debug(f"Deleted {kind.value} {container_id}; detached {len(owned)} tasks")
    return len(owned)
