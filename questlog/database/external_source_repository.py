"""Repositories for external task sources and their per-record integrations.

Security notes:
- Source configs hold upstream credentials: they are stored encrypted-at-rest
  and must never be logged.
"""

import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from questlog.models.external_source import ExternalTaskIntegration, ExternalTaskSource
from questlog.database.models import ExternalTaskIntegrationDB, ExternalTaskSourceDB, enum_to_value

logger = logging.getLogger(__name__)


def _require_fernet() -> Fernet:
    key = os.getenv("CONFIG_ENCRYPTION_KEY", "").strip()
    if not key:
        raise RuntimeError(
            "CONFIG_ENCRYPTION_KEY is not set. "
            "Set it to a Fernet key (base64 urlsafe 32-byte) to enable encrypted source configs."
        )
    return Fernet(key)


def encrypt_secret(raw: str) -> str:
    f = _require_fernet()
    return f.encrypt(raw.encode("utf-8")).decode("utf-8")


def decrypt_secret(enc: str) -> str:
    f = _require_fernet()
    try:
        return f.decrypt(enc.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        raise RuntimeError("Stored source config could not be decrypted; CONFIG_ENCRYPTION_KEY may be wrong.") from e


def encrypt_config(config: Dict[str, Any]) -> str:
    return encrypt_secret(json.dumps(config or {}, sort_keys=True))


def decrypt_config(enc: str) -> Dict[str, Any]:
    return json.loads(decrypt_secret(enc))


class ExternalSourceRepository:
    """Repository for ExternalTaskSource database operations."""

    def __init__(self, db: Session):
        self.db = db

    def _to_pydantic(self, row: ExternalTaskSourceDB) -> ExternalTaskSource:
        return row.to_pydantic(config=decrypt_config(row.config_encrypted))

    def create(self, source: ExternalTaskSource) -> ExternalTaskSource:
        """Create a new external source, encrypting its config."""
        try:
            row = ExternalTaskSourceDB(
                id=source.id,
                user_id=source.user_id,
                name=source.name,
                type=enum_to_value(source.type),
                api_endpoint=source.api_endpoint,
                auth_type=enum_to_value(source.auth_type),
                config_encrypted=encrypt_config(source.config),
                mapping_rules=source.mapping_rules.model_dump(by_alias=True, exclude_none=True),
                sync_schedule=source.sync_schedule,
                is_active=source.is_active,
                last_sync_at=source.last_sync_at,
                last_error=source.last_error,
                error_count=source.error_count,
                metadata_json=dict(source.metadata),
                created_at=source.created_at,
                updated_at=source.updated_at,
            )
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Created external source {row.id} ({row.type})")
            return self._to_pydantic(row)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create external source {source.id}: {type(e).__name__}: {str(e)}")
            raise

    def get_row(self, user_id: str, source_id: str) -> Optional[ExternalTaskSourceDB]:
        return self.db.query(ExternalTaskSourceDB).filter(
            ExternalTaskSourceDB.id == source_id,
            ExternalTaskSourceDB.user_id == user_id,
        ).first()

    def get(self, user_id: str, source_id: str) -> Optional[ExternalTaskSource]:
        """Get an external source owned by the user (config decrypted)."""
        row = self.get_row(user_id, source_id)
        return self._to_pydantic(row) if row else None

    def list_for_user(self, user_id: str, source_type: Optional[str] = None, is_active: Optional[bool] = None) -> List[ExternalTaskSource]:
        """List a user's sources, oldest first."""
        query = self.db.query(ExternalTaskSourceDB).filter(ExternalTaskSourceDB.user_id == user_id)
        if source_type is not None:
            query = query.filter(ExternalTaskSourceDB.type == enum_to_value(source_type))
        if is_active is not None:
            query = query.filter(ExternalTaskSourceDB.is_active.is_(is_active))
        rows = query.order_by(ExternalTaskSourceDB.created_at).all()
        return [self._to_pydantic(row) for row in rows]

    def get_many(self, user_id: str, source_ids: List[str]) -> Dict[str, ExternalTaskSourceDB]:
        """Batch lookup of source rows keyed by id (configs stay encrypted)."""
        ids = list(set(source_ids))
        if not ids:
            return {}
        rows = self.db.query(ExternalTaskSourceDB).filter(
            ExternalTaskSourceDB.user_id == user_id,
            ExternalTaskSourceDB.id.in_(ids),
        ).all()
        return {row.id: row for row in rows}

    def update(self, source: ExternalTaskSource) -> ExternalTaskSource:
        """Persist the editable fields of a source."""
        row = self.get_row(source.user_id, source.id)
        if not row:
            raise ValueError(f"External source {source.id} not found")

        row.name = source.name
        row.api_endpoint = source.api_endpoint
        row.auth_type = enum_to_value(source.auth_type)
        row.config_encrypted = encrypt_config(source.config)
        row.mapping_rules = source.mapping_rules.model_dump(by_alias=True, exclude_none=True)
        row.sync_schedule = source.sync_schedule
        row.is_active = source.is_active
        row.metadata_json = dict(source.metadata)
        row.updated_at = source.updated_at

        try:
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Updated external source {source.id}")
            return self._to_pydantic(row)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update external source {source.id}: {type(e).__name__}: {str(e)}")
            raise

    def record_sync(self, user_id: str, source_id: str, error_count: int, error_details: List[str], now: datetime) -> None:
        """Stamp a finished sync.

        error_count accumulates across failing syncs and resets on a clean one.
        """
        row = self.get_row(user_id, source_id)
        if not row:
            return
        try:
            row.last_sync_at = now
            row.error_count = (row.error_count or 0) + error_count if error_count else 0
            row.last_error = "; ".join(error_details) if error_details else None
            row.updated_at = now
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to record sync for source {source_id}: {type(e).__name__}: {str(e)}")
            raise

    def record_auth_failure(self, user_id: str, source_id: str, message: str, now: datetime) -> None:
        """Count a whole-batch authentication failure (last_sync_at is left alone)."""
        row = self.get_row(user_id, source_id)
        if not row:
            return
        try:
            row.error_count = (row.error_count or 0) + 1
            row.last_error = message
            row.updated_at = now
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to record auth failure for source {source_id}: {type(e).__name__}: {str(e)}")
            raise


class ExternalIntegrationRepository:
    """Repository for ExternalTaskIntegration (correlation) rows."""

    def __init__(self, db: Session):
        self.db = db

    def get_row(self, source_id: str, external_id: str) -> Optional[ExternalTaskIntegrationDB]:
        return self.db.query(ExternalTaskIntegrationDB).filter(
            ExternalTaskIntegrationDB.source_id == source_id,
            ExternalTaskIntegrationDB.external_id == external_id,
        ).first()

    def add(self, integration: ExternalTaskIntegration) -> ExternalTaskIntegrationDB:
        """Stage a new integration row. Does not commit; the caller owns the transaction."""
        row = ExternalTaskIntegrationDB(
            id=integration.id,
            source_id=integration.source_id,
            user_id=integration.user_id,
            external_id=integration.external_id,
            task_id=integration.task_id,
            status=enum_to_value(integration.status),
            metadata_json=dict(integration.metadata),
            last_sync_at=integration.last_sync_at,
            created_at=integration.created_at,
            updated_at=integration.updated_at,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def list_for_source(self, user_id: str, source_id: str, status: Optional[str] = None) -> List[ExternalTaskIntegration]:
        """Integrations of one source, oldest first, optionally filtered by status."""
        query = self.db.query(ExternalTaskIntegrationDB).filter(
            ExternalTaskIntegrationDB.user_id == user_id,
            ExternalTaskIntegrationDB.source_id == source_id,
        )
        if status is not None:
            query = query.filter(ExternalTaskIntegrationDB.status == enum_to_value(status))
        rows = query.order_by(ExternalTaskIntegrationDB.created_at, ExternalTaskIntegrationDB.id).all()
        return [row.to_pydantic() for row in rows]
