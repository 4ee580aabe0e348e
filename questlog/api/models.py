"""Request models for the questlog HTTP API."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class TaskCreateRequest(BaseModel):
    """Request model for creating a task."""
    title: str = Field(..., description="Task title")
    source: str = Field("todo", description="Task source (ai, quest, experiment, todo, ad-hoc, project, external)")
    source_id: Optional[str] = Field(None, description="Owning quest/experiment/external source id")
    description: Optional[str] = None
    target_stats: List[str] = Field(default_factory=list)
    estimated_xp: Optional[int] = None
    due_date: Optional[datetime] = None


class TaskUpdateRequest(BaseModel):
    """Request model for author edits; only fields that are sent are changed."""
    title: Optional[str] = None
    description: Optional[str] = None
    target_stats: Optional[List[str]] = None
    due_date: Optional[datetime] = None


class CompleteTaskRequest(BaseModel):
    """Request model for completing a task."""
    actual_xp: int = Field(..., description="XP actually earned")
    stat_awards: Dict[str, int] = Field(default_factory=dict, description="Stat category -> XP delta")
    feedback: Optional[str] = None


class CharacterCreateRequest(BaseModel):
    name: str
    character_class: Optional[str] = None
    stats: List[str] = Field(default_factory=list, description="Initial stat categories")


class StatCreateRequest(BaseModel):
    category: str


class QuestCreateRequest(BaseModel):
    title: str
    description: Optional[str] = None
    goal_description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ExperimentCreateRequest(BaseModel):
    title: str
    duration: int = Field(..., description="Planned duration in days")
    description: Optional[str] = None
    hypothesis: Optional[str] = None
    start_date: Optional[datetime] = None


class ExternalSourceCreateRequest(BaseModel):
    """Request model for registering an external task source."""
    name: str
    type: str
    auth_type: str
    api_endpoint: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    mapping_rules: Dict[str, Any] = Field(default_factory=dict)
    sync_schedule: Optional[str] = None
    is_active: bool = True
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ExternalSourceUpdateRequest(BaseModel):
    """Request model for editing a source; only fields that are sent are changed."""
    name: Optional[str] = None
    api_endpoint: Optional[str] = None
    auth_type: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    mapping_rules: Optional[Dict[str, Any]] = None
    sync_schedule: Optional[str] = None
    is_active: Optional[bool] = None
    metadata: Optional[Dict[str, Any]] = None


class SyncRequest(BaseModel):
    """Already-fetched upstream records to sync."""
    records: List[Any] = Field(default_factory=list)
    auth_error: Optional[str] = Field(None, description="Set when fetching the batch failed authentication")
