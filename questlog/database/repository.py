"""Repository layer for database operations."""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from sqlalchemy.orm import Session
from sqlalchemy import asc

from questlog.models.task import Task, TaskStatus
from questlog.database.models import TaskDB, enum_to_value

logger = logging.getLogger(__name__)


class TaskRepository:
    """Repository for Task database operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, task: Task) -> Task:
        """Create a new task."""
        try:
            task_db = TaskDB.from_pydantic(task)
            self.db.add(task_db)
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Created task {task.id}: {task.title[:50]}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create task {task.id}: {type(e).__name__}: {str(e)}")
            raise

    def add(self, task: Task) -> TaskDB:
        """Stage a new task row. Does not commit; the caller owns the transaction."""
        task_db = TaskDB.from_pydantic(task)
        self.db.add(task_db)
        self.db.flush()
        return task_db

    def get_row(self, user_id: str, task_id: str, include_deleted: bool = False) -> Optional[TaskDB]:
        """Get a task row by ID for a specific user (live rows unless include_deleted)."""
        query = self.db.query(TaskDB).filter(
            TaskDB.id == task_id,
            TaskDB.user_id == user_id,
        )
        if not include_deleted:
            query = query.filter(TaskDB.deleted_at.is_(None))
        return query.first()

    def get(self, user_id: str, task_id: str) -> Optional[Task]:
        """Get task by ID for a specific user."""
        task_db = self.get_row(user_id, task_id)
        return task_db.to_pydantic() if task_db else None

    def get_all(
        self,
        user_id: str,
        sources: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[str]] = None,
    ) -> List[Task]:
        """Get all live tasks for a user, oldest first, optionally limited to some sources and statuses."""
        query = self.db.query(TaskDB).filter(
            TaskDB.user_id == user_id,
            TaskDB.deleted_at.is_(None),
        )
        if sources is not None:
            query = query.filter(TaskDB.source.in_([enum_to_value(s) for s in sources]))
        if statuses is not None:
            query = query.filter(TaskDB.status.in_([enum_to_value(s) for s in statuses]))
        tasks_db = query.order_by(asc(TaskDB.created_at), asc(TaskDB.id)).all()
        return [task_db.to_pydantic() for task_db in tasks_db]

    def get_by_source(self, user_id: str, source: str, source_id: str, include_deleted: bool = False) -> List[Task]:
        """Get tasks owned by one quest/experiment/external source."""
        query = self.db.query(TaskDB).filter(
            TaskDB.user_id == user_id,
            TaskDB.source == enum_to_value(source),
            TaskDB.source_id == source_id,
        )
        if not include_deleted:
            query = query.filter(TaskDB.deleted_at.is_(None))
        tasks_db = query.order_by(asc(TaskDB.created_at)).all()
        return [task_db.to_pydantic() for task_db in tasks_db]

    def claim_pending(self, user_id: str, task_id: str, new_status: TaskStatus, now: datetime) -> int:
        """Move a pending task to ``new_status`` with a conditional update.

        Returns the number of rows changed (0 when the task is no longer
        pending). Does not commit; the caller owns the transaction.
        """
        values: Dict = {
            TaskDB.status: enum_to_value(new_status),
            TaskDB.updated_at: now,
        }
        if enum_to_value(new_status) == TaskStatus.COMPLETED.value:
            values[TaskDB.completed_at] = now
        affected = (
            self.db.query(TaskDB)
            .filter(
                TaskDB.id == task_id,
                TaskDB.user_id == user_id,
                TaskDB.status == TaskStatus.PENDING.value,
                TaskDB.deleted_at.is_(None),
            )
            .update(values, synchronize_session=False)
        )
        return int(affected)

    def update(self, task: Task, commit: bool = True, include_deleted: bool = False) -> Task:
        """Update an existing task (user_id must match task.user_id).

        With commit=False the change is only flushed; the caller owns the transaction.
        """
        query = self.db.query(TaskDB).filter(TaskDB.id == task.id, TaskDB.user_id == task.user_id)
        if not include_deleted:
            query = query.filter(TaskDB.deleted_at.is_(None))
        task_db = query.first()
        if not task_db:
            raise ValueError(f"Task {task.id} not found")

        task_db.title = task.title
        task_db.description = task.description
        task_db.source = enum_to_value(task.source)
        task_db.source_id = task.source_id
        task_db.target_stats = list(task.target_stats)
        task_db.estimated_xp = task.estimated_xp
        task_db.status = enum_to_value(task.status)
        task_db.due_date = task.due_date
        task_db.completed_at = task.completed_at
        task_db.updated_at = task.updated_at

        if not commit:
            self.db.flush()
            return task_db.to_pydantic()

        try:
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Updated task {task.id}: {task.title[:50]}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update task {task.id}: {type(e).__name__}: {str(e)}")
            raise

    def delete(self, user_id: str, task_id: str) -> bool:
        """Soft-delete a task by ID for a specific user."""
        task_db = self.get_row(user_id, task_id)
        if not task_db:
            return False

        try:
            task_db.deleted_at = datetime.utcnow()
            self.db.commit()
            logger.debug(f"Soft-deleted task {task_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to soft-delete task {task_id}: {type(e).__name__}: {str(e)}")
            raise

    def restore(self, user_id: str, task_id: str) -> bool:
        """Restore a soft-deleted task by ID for a specific user."""
        task_db = self.db.query(TaskDB).filter(
            TaskDB.id == task_id,
            TaskDB.user_id == user_id,
        ).first()
        if not task_db:
            return False

        # Idempotent restore: if it's already active, treat as success
        if task_db.deleted_at is None:
            return True

        try:
            task_db.deleted_at = None
            self.db.commit()
            logger.debug(f"Restored task {task_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to restore task {task_id}: {type(e).__name__}: {str(e)}")
            raise

    def purge(self, user_id: str, task_id: str) -> bool:
        """Permanently delete a task (and, via cascade, its completion) for a specific user."""
        task_db = self.db.query(TaskDB).filter(
            TaskDB.id == task_id,
            TaskDB.user_id == user_id,
        ).first()
        if not task_db:
            return False

        try:
            self.db.delete(task_db)
            self.db.commit()
            logger.debug(f"Purged task {task_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to purge task {task_id}: {type(e).__name__}: {str(e)}")
            raise
