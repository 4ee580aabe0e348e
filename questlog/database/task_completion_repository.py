"""Repository for the append-only task completion history."""

import logging
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from questlog.models.task import Task, TaskCompletion
from questlog.database.models import TaskCompletionDB, TaskDB

logger = logging.getLogger(__name__)


class TaskCompletionRepository:
    """Repository for TaskCompletion database operations (insert and read only)."""

    def __init__(self, db: Session):
        self.db = db

    def add(self, completion: TaskCompletion) -> TaskCompletionDB:
        """Stage a completion row. Does not commit; the caller owns the transaction."""
        row = TaskCompletionDB(
            id=completion.id,
            task_id=completion.task_id,
            user_id=completion.user_id,
            actual_xp=completion.actual_xp,
            stat_awards=dict(completion.stat_awards),
            feedback=completion.feedback,
            completed_at=completion.completed_at,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def get_for_task(self, user_id: str, task_id: str) -> Optional[TaskCompletion]:
        """Completion record of a task, if it was completed."""
        row = self.db.query(TaskCompletionDB).filter(
            TaskCompletionDB.user_id == user_id,
            TaskCompletionDB.task_id == task_id,
        ).first()
        return row.to_pydantic() if row else None

    def count_for_user(self, user_id: str) -> int:
        return (
            self.db.query(func.count(TaskCompletionDB.id))
            .join(TaskDB, TaskDB.id == TaskCompletionDB.task_id)
            .filter(TaskCompletionDB.user_id == user_id, TaskDB.deleted_at.is_(None))
            .scalar()
        ) or 0

    def list_for_user(self, user_id: str, limit: int, offset: int) -> List[Tuple[Task, TaskCompletion]]:
        """Completed tasks with their completion records, newest first."""
        rows = (
            self.db.query(TaskDB, TaskCompletionDB)
            .join(TaskCompletionDB, TaskCompletionDB.task_id == TaskDB.id)
            .filter(TaskCompletionDB.user_id == user_id, TaskDB.deleted_at.is_(None))
            .order_by(desc(TaskCompletionDB.completed_at), desc(TaskCompletionDB.id))
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [(task_db.to_pydantic(), completion_db.to_pydantic()) for task_db, completion_db in rows]

    def earned_xp_by_task(self, task_ids: Iterable[str]) -> Dict[str, int]:
        """Map of task id -> actual_xp for the completed tasks among ``task_ids``."""
        ids = list(task_ids)
        if not ids:
            return {}
        rows = (
            self.db.query(TaskCompletionDB.task_id, TaskCompletionDB.actual_xp)
            .filter(TaskCompletionDB.task_id.in_(ids))
            .all()
        )
        return {task_id: actual_xp for task_id, actual_xp in rows}
