"""SQLAlchemy database models for questlog."""

from datetime import datetime
from typing import Any, Dict, Optional
import uuid
from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint

from typing import Union, TypeVar, Type
from questlog.database.database import Base
from questlog.models.task import TaskStatus, TaskSource
from questlog.models.container import ContainerStatus
from questlog.models.external_source import AuthType, ExternalSourceType, IntegrationStatus

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


def _new_id() -> str:
    return str(uuid.uuid4())


class UserDB(Base):
    """Database model for User (owned by the surrounding app; referenced for ownership)."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_new_id)
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class CharacterDB(Base):
    """Database model for Character (one per user)."""

    __tablename__ = "characters"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    character_class = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from questlog.models.character import Character
        return Character(
            id=self.id,
            user_id=self.user_id,
            name=self.name,
            character_class=self.character_class,
            created_at=self.created_at,
        )


class CharacterStatDB(Base):
    """Database model for CharacterStat.

    current_level/current_xp/level_title are caches of total_xp; only
    CharacterStatRepository.set_total_xp writes them.
    """

    __tablename__ = "character_stats"
    __table_args__ = (
        UniqueConstraint("character_id", "category", name="uq_character_stat_category"),
    )

    id = Column(String, primary_key=True, default=_new_id)
    character_id = Column(String, ForeignKey("characters.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(String, nullable=False)
    total_xp = Column(Integer, nullable=False, default=0)
    current_level = Column(Integer, nullable=False, default=1)
    current_xp = Column(Integer, nullable=False, default=0)
    level_title = Column(String, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from questlog.models.character import CharacterStat
        return CharacterStat(
            id=self.id,
            character_id=self.character_id,
            category=self.category,
            total_xp=self.total_xp,
            current_level=self.current_level,
            current_xp=self.current_xp,
            level_title=self.level_title,
            updated_at=self.updated_at,
        )


class TaskDB(Base):
    """Database model for Task."""

    __tablename__ = "tasks"

    # Primary key
    id = Column(String, primary_key=True, default=_new_id)

    # User association
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Basic fields
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    # Provenance (source_id is polymorphic, so no foreign key)
    source = Column(String, nullable=False, index=True)
    source_id = Column(String, nullable=True, index=True)

    # Progression fields
    target_stats = Column(JSON, nullable=False, default=list)
    estimated_xp = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default=TaskStatus.PENDING.value, index=True)

    # Timestamps
    due_date = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True, index=True)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from questlog.models.task import Task

        return Task(
            id=self.id,
            user_id=self.user_id,
            title=self.title,
            description=self.description,
            source=value_to_enum(self.source, TaskSource, TaskSource.TODO),
            source_id=self.source_id,
            target_stats=list(self.target_stats or []),
            estimated_xp=self.estimated_xp,
            status=value_to_enum(self.status, TaskStatus, TaskStatus.PENDING),
            due_date=self.due_date,
            completed_at=self.completed_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
            deleted_at=self.deleted_at,
        )

    @classmethod
    def from_pydantic(cls, task):
        """Create database model from Pydantic model."""
        return cls(
            id=task.id,
            user_id=task.user_id,
            title=task.title,
            description=task.description,
            source=enum_to_value(task.source),
            source_id=task.source_id,
            target_stats=list(task.target_stats),
            estimated_xp=task.estimated_xp,
            status=enum_to_value(task.status),
            due_date=task.due_date,
            completed_at=task.completed_at,
            created_at=task.created_at,
            updated_at=task.updated_at,
            deleted_at=task.deleted_at,
        )


class TaskCompletionDB(Base):
    """Database model for TaskCompletion (append-only)."""

    __tablename__ = "task_completions"

    id = Column(String, primary_key=True, default=_new_id)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    actual_xp = Column(Integer, nullable=False, default=0)
    stat_awards = Column(JSON, nullable=False, default=dict)
    feedback = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from questlog.models.task import TaskCompletion
        return TaskCompletion(
            id=self.id,
            task_id=self.task_id,
            user_id=self.user_id,
            actual_xp=self.actual_xp,
            stat_awards=dict(self.stat_awards or {}),
            feedback=self.feedback,
            completed_at=self.completed_at,
        )


class QuestDB(Base):
    """Database model for Quest."""

    __tablename__ = "quests"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    goal_description = Column(Text, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    status = Column(String, nullable=False, default=ContainerStatus.ACTIVE.value)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from questlog.models.container import Quest
        return Quest(
            id=self.id,
            user_id=self.user_id,
            title=self.title,
            description=self.description,
            goal_description=self.goal_description,
            start_date=self.start_date,
            end_date=self.end_date,
            status=value_to_enum(self.status, ContainerStatus, ContainerStatus.ACTIVE),
            created_at=self.created_at,
        )


class ExperimentDB(Base):
    """Database model for Experiment."""

    __tablename__ = "experiments"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    hypothesis = Column(Text, nullable=True)
    duration = Column(Integer, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    status = Column(String, nullable=False, default=ContainerStatus.ACTIVE.value)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from questlog.models.container import Experiment
        return Experiment(
            id=self.id,
            user_id=self.user_id,
            title=self.title,
            description=self.description,
            hypothesis=self.hypothesis,
            duration=self.duration,
            start_date=self.start_date,
            end_date=self.end_date,
            status=value_to_enum(self.status, ContainerStatus, ContainerStatus.ACTIVE),
            created_at=self.created_at,
        )


class ExternalTaskSourceDB(Base):
    """Registered external task source.

    The connection config holds credentials, so it is stored encrypted-at-rest
    (see ExternalSourceRepository); do NOT log it.
    """

    __tablename__ = "external_task_sources"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, index=True)
    api_endpoint = Column(String, nullable=True)
    auth_type = Column(String, nullable=False)
    config_encrypted = Column(Text, nullable=False)
    mapping_rules = Column(JSON, nullable=False, default=dict)
    sync_schedule = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    last_sync_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    error_count = Column(Integer, nullable=False, default=0)
    # "metadata" is reserved on declarative classes
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self, config: Optional[Dict[str, Any]] = None):
        """Convert database model to Pydantic model (config supplied decrypted by the caller)."""
        from questlog.models.external_source import ExternalTaskSource, MappingRules
        return ExternalTaskSource(
            id=self.id,
            user_id=self.user_id,
            name=self.name,
            type=value_to_enum(self.type, ExternalSourceType, ExternalSourceType.CALENDAR),
            api_endpoint=self.api_endpoint,
            auth_type=value_to_enum(self.auth_type, AuthType, AuthType.API_KEY),
            config=config or {},
            mapping_rules=MappingRules.model_validate(self.mapping_rules or {}),
            sync_schedule=self.sync_schedule,
            is_active=self.is_active,
            last_sync_at=self.last_sync_at,
            last_error=self.last_error,
            error_count=self.error_count or 0,
            metadata=dict(self.metadata_json or {}),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class ExternalTaskIntegrationDB(Base):
    """Correlation row: one upstream record id -> at most one local task."""

    __tablename__ = "external_task_integrations"
    __table_args__ = (
        # One correlation row per upstream record; racing duplicate syncs fail here.
        UniqueConstraint("source_id", "external_id", name="uq_integration_source_external_id"),
    )

    id = Column(String, primary_key=True, default=_new_id)
    source_id = Column(String, ForeignKey("external_task_sources.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    external_id = Column(String, nullable=False)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String, nullable=False, default=IntegrationStatus.ACTIVE.value)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    last_sync_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from questlog.models.external_source import ExternalTaskIntegration
        return ExternalTaskIntegration(
            id=self.id,
            source_id=self.source_id,
            user_id=self.user_id,
            external_id=self.external_id,
            task_id=self.task_id,
            status=value_to_enum(self.status, IntegrationStatus, IntegrationStatus.ACTIVE),
            metadata=dict(self.metadata_json or {}),
            last_sync_at=self.last_sync_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
