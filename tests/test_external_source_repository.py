"""Tests for external source persistence (encryption at rest, sync bookkeeping)."""

import pytest
from datetime import datetime
from cryptography.fernet import Fernet

from questlog.database.external_source_repository import (
    ExternalSourceRepository,
    decrypt_config,
    encrypt_config,
)
from questlog.database.models import ExternalTaskSourceDB
from questlog.integrations.external_sync import register_external_source


@pytest.fixture
def source(db_session, test_user_id):
    return register_external_source(
        db_session, test_user_id, "Habits", "habits", "basic_auth", config={"username": "me", "password": "hunter2"}
    )


class TestConfigEncryption:
    def test_round_trip(self):
        config = {"apiKey": "abc", "nested": {"a": 1}}
        assert decrypt_config(encrypt_config(config)) == config

    def test_config_is_encrypted_at_rest(self, db_session, source):
        row = db_session.query(ExternalTaskSourceDB).filter(ExternalTaskSourceDB.id == source.id).one()
        assert "hunter2" not in row.config_encrypted
        assert decrypt_config(row.config_encrypted)["password"] == "hunter2"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("CONFIG_ENCRYPTION_KEY", raising=False)
        with pytest.raises(RuntimeError):
            encrypt_config({"apiKey": "abc"})

    def test_wrong_key(self, monkeypatch):
        encrypted = encrypt_config({"apiKey": "abc"})
        monkeypatch.setenv("CONFIG_ENCRYPTION_KEY", Fernet.generate_key().decode("utf-8"))
        with pytest.raises(RuntimeError):
            decrypt_config(encrypted)


class TestSyncBookkeeping:
    def test_record_sync_accumulates_errors(self, db_session, source, test_user_id):
        repo = ExternalSourceRepository(db_session)
        now = datetime(2026, 1, 1)

        repo.record_sync(test_user_id, source.id, 2, ["a", "b"], now)
        repo.record_sync(test_user_id, source.id, 1, ["c"], now)

        stored = repo.get(test_user_id, source.id)
        assert stored.error_count == 3
        assert stored.last_error == "c"
        assert stored.last_sync_at == now

    def test_record_auth_failure(self, db_session, source, test_user_id):
        repo = ExternalSourceRepository(db_session)

        repo.record_auth_failure(test_user_id, source.id, "Authentication failed", datetime(2026, 1, 1))

        stored = repo.get(test_user_id, source.id)
        assert stored.error_count == 1
        assert stored.last_sync_at is None

    def test_get_is_scoped_to_user(self, db_session, source, other_user_id):
        assert ExternalSourceRepository(db_session).get(other_user_id, source.id) is None
