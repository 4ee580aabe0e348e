"""External task source sync engine.

Turns already-fetched raw records from an upstream system (calendar, project
tool, fitness tracker, ...) into local tasks using the source's mapping rules.
Each upstream record is correlated with at most one local task through an
ExternalTaskIntegration row keyed by (source_id, external_id), which makes a
sync idempotent: re-running a batch updates tasks instead of duplicating them.

Each record is committed on its own. A malformed record is counted as an error
and the batch continues; a whole-batch authentication failure is reported as
a single error. Neither raises.
"""

import json
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from questlog.errors import NotFoundError, ValidationError
from questlog.models.task import Task, TaskSource, TaskStatus
from questlog.models.task_factory import create_task_base
from questlog.models.external_source import (
    AuthType,
    ExternalTaskIntegration,
    ExternalTaskSource,
    IntegrationStatus,
    MappingRules,
)
from questlog.database.repository import TaskRepository
from questlog.database.external_source_repository import ExternalIntegrationRepository, ExternalSourceRepository
from questlog.integrations.mapping import compile_formula, estimate_xp, resolve_path
from questlog.integrations.templates import get_template
from questlog.validation import require_text, require_uuid, to_utc_naive

logger = logging.getLogger(__name__)

EDITABLE_SOURCE_FIELDS = (
    "name",
    "api_endpoint",
    "auth_type",
    "config",
    "mapping_rules",
    "sync_schedule",
    "is_active",
    "metadata",
)


@dataclass
class SyncResult:
    """Structured outcome of one sync batch."""

    tasks_created: int = 0
    tasks_updated: int = 0
    tasks_unchanged: int = 0
    errors: int = 0
    error_details: List[str] = field(default_factory=list)
    created_tasks: List[Task] = field(default_factory=list)

    def add_error(self, detail: str) -> None:
        self.errors += 1
        self.error_details.append(detail)


@dataclass(frozen=True)
class MappedRecord:
    external_id: str
    title: str
    description: Optional[str]
    due_date: Optional[datetime]
    estimated_xp: int


def parse_due_date(value: Any) -> datetime:
    """Parse an upstream date/datetime into a naive UTC datetime.

    Raises:
        ValueError: If the value is not a recognizable date
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = date_parser.parse(text)
            except (ValueError, OverflowError) as e:
                raise ValueError(f"Unrecognized date: {value!r}") from e
    else:
        raise ValueError(f"Unrecognized date: {value!r}")

    return to_utc_naive(parsed, "due_date")


def _present(value: Any) -> bool:
    return value is not None and not (isinstance(value, str) and not value.strip())


def map_record(record: Any, rules: MappingRules) -> MappedRecord:
    """Extract task fields from one raw record.

    Raises:
        ValidationError: If the record is empty, or its title, external id or due date is unusable
    """
    if not isinstance(record, Mapping) or not record:
        raise ValidationError("Record is empty or not an object", field="record")

    title = resolve_path(record, rules.title_field)
    if not _present(title) or isinstance(title, (Mapping, list)):
        raise ValidationError(f"Missing title field: {rules.title_field}", field="title")

    external_id = resolve_path(record, rules.id_field)
    if not _present(external_id) or isinstance(external_id, (Mapping, list)):
        raise ValidationError("Missing external ID", field=rules.id_field)

    description = resolve_path(record, rules.description_field)
    due_raw = resolve_path(record, rules.due_date_field)
    due_date = None
    if _present(due_raw):
        try:
            due_date = parse_due_date(due_raw)
        except ValueError:
            raise ValidationError(f"Invalid due date in field {rules.due_date_field}: {due_raw!r}", field="due_date")

    return MappedRecord(
        external_id=str(external_id),
        title=str(title).strip(),
        description=str(description) if _present(description) else None,
        due_date=due_date,
        estimated_xp=estimate_xp(rules.estimated_xp_formula, record),
    )


def _json_safe(record: Any) -> Any:
    return json.loads(json.dumps(record, default=str))


class ExternalSync:
    """Applies one batch of raw records to a source's tasks."""

    def __init__(self, db: Session, user_id: str, source_id: str, rules: MappingRules, now: datetime):
        self.db = db
        self.user_id = user_id
        self.source_id = source_id
        self.rules = rules
        self.now = now
        self.tasks = TaskRepository(db)
        self.integrations = ExternalIntegrationRepository(db)

    def _create(self, mapped: MappedRecord, integration_row, raw: Dict[str, Any]) -> Task:
        task = create_task_base(
            user_id=self.user_id,
            source=TaskSource.EXTERNAL,
            title=mapped.title,
            source_id=self.source_id,
            description=mapped.description,
            target_stats=self.rules.default_stats,
            estimated_xp=mapped.estimated_xp,
            due_date=mapped.due_date,
            now=self.now,
        )
        self.tasks.add(task)
        if integration_row is None:
            self.integrations.add(ExternalTaskIntegration(
                id=str(uuid.uuid4()),
                source_id=self.source_id,
                user_id=self.user_id,
                external_id=mapped.external_id,
                task_id=task.id,
                status=IntegrationStatus.ACTIVE,
                metadata={"original_data": raw},
                last_sync_at=self.now,
                created_at=self.now,
                updated_at=self.now,
            ))
        else:
            # Linked task was purged: relink to the new one.
            integration_row.task_id = task.id
            self._touch(integration_row, raw)
        return task

    def _update(self, task_row, mapped: MappedRecord) -> bool:
        """Refresh a linked pending task. Returns False when the task is no longer pending."""
        if task_row.status != TaskStatus.PENDING.value:
            return False
        task_row.title = mapped.title
        if mapped.description is not None:
            task_row.description = mapped.description
        if mapped.due_date is not None:
            task_row.due_date = mapped.due_date
        task_row.estimated_xp = mapped.estimated_xp
        task_row.updated_at = self.now
        return True

    def _touch(self, integration_row, raw: Dict[str, Any]) -> None:
        integration_row.status = IntegrationStatus.ACTIVE.value
        integration_row.metadata_json = {"original_data": raw}
        integration_row.last_sync_at = self.now
        integration_row.updated_at = self.now

    def apply(self, record: Any, result: SyncResult) -> None:
        """Create or update the task for one record, committing on success."""
        try:
            mapped = map_record(record, self.rules)
        except ValidationError as e:
            logger.warning(f"Skipping record from source {self.source_id}: {e.message}")
            result.add_error(e.message)
            return

        try:
            raw = _json_safe(record)
            integration_row = self.integrations.get_row(self.source_id, mapped.external_id)
            task_row = None
            if integration_row is not None and integration_row.task_id:
                task_row = self.tasks.get_row(self.user_id, integration_row.task_id, include_deleted=True)

            if task_row is None:
                task = self._create(mapped, integration_row, raw)
                self.db.commit()
                result.tasks_created += 1
                result.created_tasks.append(task)
                return

            # Soft-deleted tasks stay deleted until the user restores them.
            updated = task_row.deleted_at is None and self._update(task_row, mapped)
            self._touch(integration_row, raw)
            self.db.commit()
            if updated:
                result.tasks_updated += 1
            else:
                result.tasks_unchanged += 1
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Failed to sync record {mapped.external_id} from source {self.source_id}: {type(e).__name__}: {str(e)}")
            result.add_error(f"Error processing record {mapped.external_id}: {type(e).__name__}")


def sync_external_source(
    db: Session,
    user_id: str,
    source_id: str,
    raw_records: Optional[List[Any]],
    auth_error: Any = None,
    now: Optional[datetime] = None,
) -> SyncResult:
    """Sync a batch of already-fetched upstream records into tasks.

    Args:
        db: Database session
        user_id: Owner of the source
        source_id: External source to sync
        raw_records: Raw upstream records (mappings)
        auth_error: Set when fetching the batch failed authentication; the
            whole batch is then reported as one error
        now: Sync time (defaults to utcnow)

    Returns:
        SyncResult with created/updated/unchanged counts and per-record errors

    Raises:
        ValidationError: Malformed ids, inactive source, or records not a list
        NotFoundError: Source missing or owned by someone else
    """
    user_id = require_uuid(user_id, "user_id")
    source_id = require_uuid(source_id, "source_id")
    now = now or datetime.utcnow()

    sources = ExternalSourceRepository(db)
    source_row = sources.get_row(user_id, source_id)
    if not source_row:
        raise NotFoundError("External source not found", field="source_id")
    if not source_row.is_active:
        raise ValidationError("External source is not active", field="source_id")
    if raw_records is None:
        raw_records = []
    if not isinstance(raw_records, list):
        raise ValidationError("raw_records must be a list", field="raw_records")

    result = SyncResult()
    if auth_error:
        message = f"Authentication failed: {auth_error}" if isinstance(auth_error, str) else "Authentication failed"
        logger.warning(f"Sync of source {source_id} aborted: {message}")
        sources.record_auth_failure(user_id, source_id, message, now)
        result.add_error(message)
        return result

    rules = MappingRules.model_validate(source_row.mapping_rules or {})
    sync = ExternalSync(db, user_id, source_id, rules, now)
    for record in raw_records:
        sync.apply(record, result)

    sources.record_sync(user_id, source_id, result.errors, result.error_details, now)
    logger.info(
        f"Synced source {source_id}: {result.tasks_created} created, {result.tasks_updated} updated, "
        f"{result.tasks_unchanged} unchanged, {result.errors} errors"
    )
    return result


def build_mapping_rules(source_type: Any, overrides: Optional[Dict[str, Any]] = None, base: Optional[MappingRules] = None) -> MappingRules:
    """Layer user mapping rules over ``base`` (or the type's template defaults).

    Accepts snake_case or camelCase keys. A string formula must compile.
    """
    if base is None:
        base = get_template(source_type).default_mapping_rules()
    if overrides is not None and not isinstance(overrides, Mapping):
        raise ValidationError("mapping_rules must be an object", field="mapping_rules")
    try:
        user_rules = MappingRules.model_validate(dict(overrides or {}))
        merged = {**base.model_dump(), **user_rules.model_dump(exclude_unset=True)}
        rules = MappingRules.model_validate(merged)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid mapping rules: {e.errors()[0].get('msg', 'invalid value')}", field="mapping_rules")
    if isinstance(rules.estimated_xp_formula, str):
        compile_formula(rules.estimated_xp_formula)
    return rules


def _validate_auth_type(source_type: Any, auth_type: Any) -> AuthType:
    try:
        auth = AuthType(auth_type)
    except ValueError:
        raise ValidationError(f"Unknown auth type: {auth_type}", field="auth_type")
    template = get_template(source_type)
    if auth not in template.auth_types:
        supported = ", ".join(a.value for a in template.auth_types)
        raise ValidationError(f"{template.type.value} sources support: {supported}", field="auth_type")
    return auth


def _validate_endpoint(api_endpoint: Optional[str]) -> Optional[str]:
    if api_endpoint is None:
        return None
    if not isinstance(api_endpoint, str) or not api_endpoint.startswith(("http://", "https://")):
        raise ValidationError("api_endpoint must be an http(s) URL", field="api_endpoint")
    return api_endpoint


def _validate_schedule(sync_schedule: Optional[str]) -> Optional[str]:
    if sync_schedule is None:
        return None
    if not isinstance(sync_schedule, str) or len(sync_schedule.split()) not in (5, 6):
        raise ValidationError("sync_schedule must be a cron expression", field="sync_schedule")
    return sync_schedule


def _validate_mapping(value: Any, field_name: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValidationError(f"{field_name} must be an object", field=field_name)
    return dict(value)


def register_external_source(
    db: Session,
    user_id: str,
    name: str,
    source_type: Any,
    auth_type: Any,
    api_endpoint: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
    mapping_rules: Optional[Dict[str, Any]] = None,
    sync_schedule: Optional[str] = None,
    is_active: bool = True,
    metadata: Optional[Dict[str, Any]] = None,
) -> ExternalTaskSource:
    """Register a new external source for the user."""
    user_id = require_uuid(user_id, "user_id")
    name = require_text(name, "name")
    if len(name) > 255:
        raise ValidationError("name must be at most 255 characters", field="name")
    template = get_template(source_type)
    now = datetime.utcnow()
    source = ExternalTaskSource(
        id=str(uuid.uuid4()),
        user_id=user_id,
        name=name,
        type=template.type,
        api_endpoint=_validate_endpoint(api_endpoint),
        auth_type=_validate_auth_type(template.type, auth_type),
        config=_validate_mapping(config, "config"),
        mapping_rules=build_mapping_rules(template.type, mapping_rules),
        sync_schedule=_validate_schedule(sync_schedule),
        is_active=bool(is_active),
        metadata=_validate_mapping(metadata, "metadata"),
        created_at=now,
        updated_at=now,
    )
    return ExternalSourceRepository(db).create(source)


def get_external_source(db: Session, user_id: str, source_id: str) -> ExternalTaskSource:
    user_id = require_uuid(user_id, "user_id")
    source_id = require_uuid(source_id, "source_id")
    source = ExternalSourceRepository(db).get(user_id, source_id)
    if not source:
        raise NotFoundError("External source not found", field="source_id")
    return source


def update_external_source(db: Session, user_id: str, source_id: str, changes: Dict[str, Any]) -> ExternalTaskSource:
    """Apply user edits to a source; mapping rule edits are layered on the current rules."""
    source = get_external_source(db, user_id, source_id)
    unknown = sorted(set(changes) - set(EDITABLE_SOURCE_FIELDS))
    if unknown:
        raise ValidationError(f"Fields are not editable: {', '.join(unknown)}", field=unknown[0])

    update: Dict[str, Any] = {"updated_at": datetime.utcnow()}
    if "name" in changes:
        update["name"] = require_text(changes["name"], "name")
    if "api_endpoint" in changes:
        update["api_endpoint"] = _validate_endpoint(changes["api_endpoint"])
    if "auth_type" in changes:
        update["auth_type"] = _validate_auth_type(source.type, changes["auth_type"]).value
    if "config" in changes:
        update["config"] = _validate_mapping(changes["config"], "config")
    if "mapping_rules" in changes:
        update["mapping_rules"] = build_mapping_rules(source.type, changes["mapping_rules"], base=source.mapping_rules)
    if "sync_schedule" in changes:
        update["sync_schedule"] = _validate_schedule(changes["sync_schedule"])
    if "is_active" in changes:
        if not isinstance(changes["is_active"], bool):
            raise ValidationError("is_active must be a boolean", field="is_active")
        update["is_active"] = changes["is_active"]
    if "metadata" in changes:
        update["metadata"] = _validate_mapping(changes["metadata"], "metadata")

    return ExternalSourceRepository(db).update(source.model_copy(update=update))


def list_external_sources(
    db: Session,
    user_id: str,
    source_type: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> List[ExternalTaskSource]:
    user_id = require_uuid(user_id, "user_id")
    if source_type is not None:
        source_type = get_template(source_type).type.value
    return ExternalSourceRepository(db).list_for_user(user_id, source_type=source_type, is_active=is_active)


def list_integrations(
    db: Session,
    user_id: str,
    source_id: str,
    status: Optional[str] = None,
) -> List[ExternalTaskIntegration]:
    """Correlation rows of one of the user's sources."""
    user_id = require_uuid(user_id, "user_id")
    source_id = require_uuid(source_id, "source_id")
    source = ExternalSourceRepository(db).get_row(user_id, source_id)
    if not source:
        raise NotFoundError("External source not found", field="source_id")
    if status is not None:
        try:
            status = IntegrationStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown integration status: {status}", field="status")
    return ExternalIntegrationRepository(db).list_for_source(source.user_id, source.id, status=status)
