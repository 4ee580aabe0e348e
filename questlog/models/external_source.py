"""External task source data models for questlog."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from enum import Enum
from pydantic import BaseModel, Field

from questlog.models.constants import DEFAULT_EXTERNAL_STATS


class ExternalSourceType(str, Enum):
    """Kinds of upstream systems tasks can be synced from."""
    CALENDAR = "calendar"
    PROJECT_MANAGEMENT = "project_management"
    FITNESS = "fitness"
    NOTES = "notes"
    HABITS = "habits"
    TIME_TRACKING = "time_tracking"


class AuthType(str, Enum):
    """How the upstream system authenticates."""
    OAUTH2 = "oauth2"
    API_KEY = "api_key"
    BASIC_AUTH = "basic_auth"


class IntegrationStatus(str, Enum):
    """Status of a single external record's correlation row."""
    ACTIVE = "active"
    ERROR = "error"


class MappingRules(BaseModel):
    """Declarative rules that turn a raw external record into task fields.

    Field names are dot paths into the raw record (``start.dateTime``).
    Upstream configs use camelCase keys, so aliases are accepted on input.
    """

    id_field: str = Field("id", alias="idField")
    title_field: str = Field("title", alias="titleField")
    description_field: str = Field("description", alias="descriptionField")
    due_date_field: str = Field("dueDate", alias="dueDateField")
    default_stats: List[str] = Field(
        default_factory=lambda: list(DEFAULT_EXTERNAL_STATS), alias="defaultStats"
    )
    estimated_xp_formula: Optional[Union[int, float, str]] = Field(None, alias="estimatedXpFormula")

    class Config:
        """Pydantic configuration."""
        populate_by_name = True


class ExternalTaskSource(BaseModel):
    """A registered integration with an upstream task system."""

    id: str = Field(..., description="Unique source identifier")
    user_id: str = Field(..., description="Owning user")
    name: str = Field(..., description="Display name")
    type: ExternalSourceType = Field(..., description="Upstream system kind")
    api_endpoint: Optional[str] = Field(None, description="Upstream API base URL")
    auth_type: AuthType = Field(..., description="Upstream auth mechanism")
    config: Dict[str, Any] = Field(default_factory=dict, description="Credentials/connection parameters")
    mapping_rules: MappingRules = Field(default_factory=MappingRules, description="Field mapping rules")
    sync_schedule: Optional[str] = Field(None, description="Cron expression for the external scheduler")
    is_active: bool = Field(True, description="Whether syncs are accepted")
    last_sync_at: Optional[datetime] = Field(None, description="Last completed sync")
    last_error: Optional[str] = Field(None, description="Errors from the last sync, joined")
    error_count: int = Field(0, ge=0, description="Accumulated error count")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Free-form metadata")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class ExternalTaskIntegration(BaseModel):
    """Correlation between one upstream record and at most one local task."""

    id: str = Field(..., description="Unique integration identifier")
    source_id: str = Field(..., description="External source this record came from")
    user_id: str = Field(..., description="Owning user")
    external_id: str = Field(..., description="Stable id of the record upstream")
    task_id: Optional[str] = Field(None, description="Linked local task")
    status: IntegrationStatus = Field(IntegrationStatus.ACTIVE, description="Correlation status")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Last raw record and sync details")
    last_sync_at: Optional[datetime] = Field(None, description="Last time this record was synced")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
