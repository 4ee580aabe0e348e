"""Pytest fixtures and configuration for questlog tests."""

import pytest
import uuid
from datetime import datetime
from cryptography.fernet import Fernet
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from questlog.database.database import Base, get_db
from questlog.database.repository import TaskRepository
from questlog.database.character_stat_repository import CharacterStatRepository
from questlog.models.task import Task, TaskSource, TaskStatus


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(autouse=True)
def config_encryption_key(monkeypatch):
    """Every test gets a fresh Fernet key for external source configs."""
    key = Fernet.generate_key().decode("utf-8")
    monkeypatch.setenv("CONFIG_ENCRYPTION_KEY", key)
    return key


@pytest.fixture
def test_user_id():
    """Test user ID for multi-user testing."""
    return str(uuid.uuid4())


@pytest.fixture
def other_user_id():
    """A second user, for ownership checks."""
    return str(uuid.uuid4())


@pytest.fixture(scope="function")
def db_session(test_user_id, other_user_id):
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    Also creates both test users in the database.
    """
    from questlog.database.user_repository import UserRepository

    # Create engine with StaticPool for in-memory database
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Enable SQLite foreign keys (ON DELETE CASCADE / SET NULL)
    @event.listens_for(engine, "connect")
    def set_sqlite_pragmas(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    # Users are required for foreign key constraints
    users = UserRepository(session)
    users.create_or_update(test_user_id, "test@example.com", "Test User")
    users.create_or_update(other_user_id, "other@example.com", "Other User")

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def task_repository(db_session: Session):
    """Create a TaskRepository instance for testing."""
    return TaskRepository(db_session)


@pytest.fixture
def character(db_session: Session, test_user_id):
    """The test user's character with Fitness and Learning stats at level 1."""
    return CharacterStatRepository(db_session).create_character(
        test_user_id, "Hero", character_class="Ranger", categories=["Fitness", "Learning"]
    )


@pytest.fixture
def sample_task_base(test_user_id):
    """Base task data for creating test tasks.

    Returns a dict with default task attributes that can be overridden.
    """
    now = datetime.utcnow()
    return {
        "id": str(uuid.uuid4()),
        "user_id": test_user_id,
        "title": "Test Task",
        "description": "Test description",
        "source": TaskSource.TODO,
        "source_id": None,
        "target_stats": ["Fitness"],
        "estimated_xp": 50,
        "status": TaskStatus.PENDING,
        "due_date": None,
        "completed_at": None,
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def sample_task(sample_task_base):
    """Create a sample Task object for testing."""
    return Task(**sample_task_base)


@pytest.fixture
def make_task(task_repository, sample_task_base):
    """Factory that persists a task built from sample_task_base plus overrides."""
    def _make(**overrides):
        data = {**sample_task_base, "id": str(uuid.uuid4()), **overrides}
        return task_repository.create(Task(**data))
    return _make


@pytest.fixture
def test_client(db_session: Session, test_user_id):
    """Create a FastAPI test client with overridden database dependency.

    Requests carry the test user's id in the X-User-Id header.
    """
    from questlog.api.app import app

    # Override the get_db dependency to use our test database session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        client.headers.update({"X-User-Id": test_user_id})
        yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
