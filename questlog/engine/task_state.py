"""Task lifecycle: the status state machine and ownership-scoped task operations.

The only legal status transitions are from ``pending`` to ``completed``,
``skipped`` or ``failed``; every terminal status is final. Completion itself
lives in questlog.engine.completion because it also moves XP.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from questlog.errors import NotFoundError, StateConflictError, ValidationError
from questlog.models.task import Task, TaskSource, TaskStatus
from questlog.models.task_factory import create_task_base, normalize_target_stats
from questlog.database.repository import TaskRepository
from questlog.database.container_repository import ContainerRepository
from questlog.database.external_source_repository import ExternalSourceRepository
from questlog.validation import require_text, require_uuid, to_utc_naive

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "target_stats", "due_date")

_TERMINAL_STATUSES = (TaskStatus.COMPLETED.value, TaskStatus.SKIPPED.value, TaskStatus.FAILED.value)


def _status_value(status: Any) -> str:
    return status.value if isinstance(status, TaskStatus) else str(status)


def transition(task: Task, new_status: Any, now: Optional[datetime] = None) -> Task:
    """Return a copy of ``task`` moved to ``new_status``.

    Raises:
        ValidationError: If new_status is not a task status
        StateConflictError: If the task is not pending or new_status is not terminal
    """
    target = _status_value(new_status)
    if target not in {s.value for s in TaskStatus}:
        raise ValidationError(f"Unknown task status: {target}", field="status")
    if task.status != TaskStatus.PENDING.value:
        raise StateConflictError(f"Task is already {task.status}", field="status")
    if target not in _TERMINAL_STATUSES:
        raise StateConflictError(f"Cannot move a pending task to {target}", field="status")

    now = now or datetime.utcnow()
    update: Dict[str, Any] = {"status": target, "updated_at": now}
    if target == TaskStatus.COMPLETED.value:
        update["completed_at"] = now
    return task.model_copy(update=update)


def apply_edits(task: Task, changes: Dict[str, Any], now: Optional[datetime] = None) -> Task:
    """Apply author edits to a pending task.

    Only title, description, target_stats and due_date may change.
    """
    unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(f"Fields are not editable: {', '.join(unknown)}", field=unknown[0])
    if task.status != TaskStatus.PENDING.value:
        raise StateConflictError(f"Task is {task.status}; only pending tasks can be edited", field="status")

    update: Dict[str, Any] = {}
    if "title" in changes:
        update["title"] = require_text(changes["title"], "title")
    if "description" in changes:
        update["description"] = changes["description"]
    if "target_stats" in changes:
        stats = normalize_target_stats(changes["target_stats"])
        if task.source == TaskSource.AD_HOC.value and len(stats) != 1:
            raise ValidationError("Ad-hoc tasks must target exactly one stat category", field="target_stats")
        update["target_stats"] = stats
    if "due_date" in changes:
        update["due_date"] = to_utc_naive(changes["due_date"], "due_date")
    update["updated_at"] = now or datetime.utcnow()
    return task.model_copy(update=update)


def detach_from_container(task: Task, now: Optional[datetime] = None) -> Task:
    """Reparent a container-owned task to ad-hoc; its status and stats are kept."""
    return task.model_copy(update={
        "source": TaskSource.AD_HOC.value,
        "source_id": None,
        "updated_at": now or datetime.utcnow(),
    })


class TaskService:
    """Ownership-scoped task operations on top of TaskRepository."""

    def __init__(self, db: Session):
        self.db = db
        self.tasks = TaskRepository(db)

    def _require_owner_record(self, user_id: str, source: TaskSource, source_id: Optional[str]) -> None:
        if source in (TaskSource.QUEST, TaskSource.EXPERIMENT):
            if not ContainerRepository(self.db).get_row(source.value, user_id, source_id):
                raise NotFoundError(f"{source.value.capitalize()} not found", field="source_id")
        elif source == TaskSource.EXTERNAL:
            if not ExternalSourceRepository(self.db).get_row(user_id, source_id):
                raise NotFoundError("External source not found", field="source_id")

    def get_task(self, user_id: str, task_id: str) -> Task:
        user_id = require_uuid(user_id, "user_id")
        task_id = require_uuid(task_id, "task_id")
        task = self.tasks.get(user_id, task_id)
        if not task:
            raise NotFoundError("Task not found", field="task_id")
        return task

    def list_tasks(self, user_id: str, source: Any = None, status: Any = None) -> List[Task]:
        """Live tasks of the user, oldest first, optionally filtered by source and status.

        This is the view for side lists (ad-hoc, project) that the dashboard
        leaves out.
        """
        user_id = require_uuid(user_id, "user_id")
        sources = None
        if source is not None:
            try:
                sources = [TaskSource(source).value]
            except ValueError:
                raise ValidationError(f"Unknown task source: {source}", field="source")
        statuses = None
        if status is not None:
            try:
                statuses = [TaskStatus(status).value]
            except ValueError:
                raise ValidationError(f"Unknown task status: {status}", field="status")
        return self.tasks.get_all(user_id, sources=sources, statuses=statuses)

    def create_task(
        self,
        user_id: str,
        source: Any,
        title: str,
        source_id: Optional[str] = None,
        description: Optional[str] = None,
        target_stats: Optional[Iterable[str]] = None,
        estimated_xp: Optional[int] = None,
        due_date: Optional[datetime] = None,
    ) -> Task:
        """Create a pending task after checking the owning record belongs to the user."""
        user_id = require_uuid(user_id, "user_id")
        if source_id is not None:
            source_id = require_uuid(source_id, "source_id")
        task = create_task_base(
            user_id=user_id,
            source=source,
            title=title,
            source_id=source_id,
            description=description,
            target_stats=target_stats,
            estimated_xp=estimated_xp,
            due_date=due_date,
        )
        self._require_owner_record(user_id, TaskSource(task.source), source_id)
        return self.tasks.create(task)

    def edit_task(self, user_id: str, task_id: str, changes: Dict[str, Any]) -> Task:
        task = self.get_task(user_id, task_id)
        edited = apply_edits(task, changes)
        return self.tasks.update(edited)

    def _finish(self, user_id: str, task_id: str, new_status: TaskStatus) -> Task:
        task = self.get_task(user_id, task_id)
        # Validates the transition before touching the row.
        transition(task, new_status)
        try:
            affected = self.tasks.claim_pending(task.user_id, task.id, new_status, datetime.utcnow())
            if affected == 0:
                raise StateConflictError("Task is no longer pending", field="status")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.debug(f"Task {task.id} -> {new_status.value}")
        return self.tasks.get(task.user_id, task.id)

    def skip_task(self, user_id: str, task_id: str) -> Task:
        """Mark a pending task skipped (no XP)."""
        return self._finish(user_id, task_id, TaskStatus.SKIPPED)

    def fail_task(self, user_id: str, task_id: str) -> Task:
        """Mark a pending task failed (no XP)."""
        return self._finish(user_id, task_id, TaskStatus.FAILED)

    def delete_task(self, user_id: str, task_id: str) -> None:
        """Soft-delete a task; it disappears from every read path."""
        user_id = require_uuid(user_id, "user_id")
        task_id = require_uuid(task_id, "task_id")
        if not self.tasks.delete(user_id, task_id):
            raise NotFoundError("Task not found", field="task_id")

    def restore_task(self, user_id: str, task_id: str) -> Task:
        user_id = require_uuid(user_id, "user_id")
        task_id = require_uuid(task_id, "task_id")
        if not self.tasks.restore(user_id, task_id):
            raise NotFoundError("Task not found", field="task_id")
        return self.tasks.get(user_id, task_id)

    def purge_task(self, user_id: str, task_id: str) -> None:
        """Permanently delete a task together with its completion record."""
        user_id = require_uuid(user_id, "user_id")
        task_id = require_uuid(task_id, "task_id")
        if not self.tasks.purge(user_id, task_id):
            raise NotFoundError("Task not found", field="task_id")
