"""Quest and Experiment goal containers."""

from datetime import datetime
from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field


class ContainerStatus(str, Enum):
    """Lifecycle status shared by quests and experiments."""
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    ABANDONED = "abandoned"


class ContainerKind(str, Enum):
    """Kinds of containers that can own tasks (matches the task source value)."""
    QUEST = "quest"
    EXPERIMENT = "experiment"


class Quest(BaseModel):
    """Long-running goal that owns tasks."""

    id: str = Field(..., description="Unique quest identifier")
    user_id: str = Field(..., description="Owning user")
    title: str = Field(..., description="Quest title")
    description: Optional[str] = Field(None, description="Quest description")
    goal_description: Optional[str] = Field(None, description="What success looks like")
    start_date: datetime = Field(..., description="Start of the quest")
    end_date: Optional[datetime] = Field(None, description="Planned end of the quest")
    status: ContainerStatus = Field(ContainerStatus.ACTIVE, description="Quest status")
    created_at: datetime = Field(..., description="Creation timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class Experiment(BaseModel):
    """Time-boxed experiment that owns tasks."""

    id: str = Field(..., description="Unique experiment identifier")
    user_id: str = Field(..., description="Owning user")
    title: str = Field(..., description="Experiment title")
    description: Optional[str] = Field(None, description="Experiment description")
    hypothesis: Optional[str] = Field(None, description="What the experiment tests")
    duration: Optional[int] = Field(None, ge=1, description="Planned duration in days")
    start_date: datetime = Field(..., description="Start of the experiment")
    end_date: Optional[datetime] = Field(None, description="Planned end of the experiment")
    status: ContainerStatus = Field(ContainerStatus.ACTIVE, description="Experiment status")
    created_at: datetime = Field(..., description="Creation timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class ContainerProgress(BaseModel):
    """Progress of a container, derived on read from its tasks and completions."""

    total_tasks: int = 0
    completed_tasks: int = 0
    pending_tasks: int = 0
    completion_rate: int = Field(0, description="Completed tasks as a whole percentage")
    estimated_xp: int = 0
    earned_xp: int = 0
