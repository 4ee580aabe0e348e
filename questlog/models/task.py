"""Task data model for questlog."""

from datetime import datetime
from typing import Dict, List, Optional
from enum import Enum
from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    """Task status enumeration."""
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class TaskSource(str, Enum):
    """Provenance of a task."""
    AI = "ai"
    QUEST = "quest"
    EXPERIMENT = "experiment"
    TODO = "todo"
    AD_HOC = "ad-hoc"
    PROJECT = "project"
    EXTERNAL = "external"


# Sources whose tasks show up on the aggregated dashboard.
DASHBOARD_SOURCES = (
    TaskSource.AI,
    TaskSource.QUEST,
    TaskSource.EXPERIMENT,
    TaskSource.TODO,
    TaskSource.EXTERNAL,
)

# Sources that never carry an owning record.
UNOWNED_SOURCES = (TaskSource.AI, TaskSource.TODO, TaskSource.AD_HOC)

# Sources that must reference an owning record when created.
OWNED_SOURCES = (TaskSource.QUEST, TaskSource.EXPERIMENT, TaskSource.EXTERNAL)


class Task(BaseModel):
    """Canonical Task model."""

    id: str = Field(..., description="Unique task identifier (UUID v4)")
    user_id: str = Field(..., description="User ID who owns this task")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    source: TaskSource = Field(..., description="Which subsystem created the task")
    source_id: Optional[str] = Field(
        None, description="Owning quest/experiment/external source id (null for ai/todo/ad-hoc)"
    )
    target_stats: List[str] = Field(
        default_factory=list, description="Stat categories this task can award XP to"
    )
    estimated_xp: int = Field(0, ge=0, description="Author-time XP estimate")
    status: TaskStatus = Field(TaskStatus.PENDING, description="Task status")
    due_date: Optional[datetime] = Field(None, description="Optional due date")
    completed_at: Optional[datetime] = Field(None, description="Set on transition into completed")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Task last update timestamp")
    deleted_at: Optional[datetime] = Field(None, description="Soft-delete timestamp (null if active)")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class TaskCompletion(BaseModel):
    """Append-only record of a single completion event."""

    id: str = Field(..., description="Unique completion identifier")
    task_id: str = Field(..., description="Completed task")
    user_id: str = Field(..., description="User who completed the task")
    actual_xp: int = Field(..., description="XP actually earned (any sign)")
    stat_awards: Dict[str, int] = Field(
        default_factory=dict, description="Stat category -> XP delta"
    )
    feedback: Optional[str] = Field(None, description="Optional completion feedback")
    completed_at: datetime = Field(..., description="Completion timestamp")
