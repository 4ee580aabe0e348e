"""Tests for TaskRepository CRUD operations."""

import pytest
from datetime import datetime, timedelta
import uuid

from questlog.models.task import Task, TaskSource, TaskStatus


class TestTaskRepository:
    """Test TaskRepository CRUD operations."""

    def test_create_task(self, task_repository, sample_task, test_user_id):
        """Test creating a task."""
        created = task_repository.create(sample_task)

        assert created.id == sample_task.id
        assert created.title == sample_task.title
        assert created.status == TaskStatus.PENDING.value
        assert created.source == TaskSource.TODO.value
        assert created.target_stats == ["Fitness"]
        assert created.user_id == test_user_id

    def test_get_task_by_id(self, task_repository, sample_task, test_user_id):
        created = task_repository.create(sample_task)
        retrieved = task_repository.get(test_user_id, created.id)

        assert retrieved is not None
        assert retrieved.id == created.id

    def test_get_is_scoped_to_user(self, task_repository, sample_task, other_user_id):
        created = task_repository.create(sample_task)
        assert task_repository.get(other_user_id, created.id) is None

    def test_get_nonexistent_task(self, task_repository, test_user_id):
        assert task_repository.get(test_user_id, str(uuid.uuid4())) is None

    def test_get_all_sorted_oldest_first(self, make_task, task_repository, test_user_id):
        now = datetime.utcnow()
        make_task(title="Task 3", created_at=now)
        make_task(title="Task 1", created_at=now - timedelta(minutes=2))
        make_task(title="Task 2", created_at=now - timedelta(minutes=1))

        titles = [task.title for task in task_repository.get_all(test_user_id)]
        assert titles == ["Task 1", "Task 2", "Task 3"]

    def test_get_all_filters_sources(self, make_task, task_repository, test_user_id):
        make_task(title="Todo")
        make_task(title="Project", source=TaskSource.PROJECT)

        tasks = task_repository.get_all(test_user_id, sources=[TaskSource.TODO])
        assert [task.title for task in tasks] == ["Todo"]

    def test_claim_pending_only_once(self, db_session, make_task, task_repository, test_user_id):
        task = make_task()
        now = datetime.utcnow()

        assert task_repository.claim_pending(test_user_id, task.id, TaskStatus.COMPLETED, now) == 1
        db_session.commit()
        assert task_repository.claim_pending(test_user_id, task.id, TaskStatus.SKIPPED, now) == 0

        stored = task_repository.get(test_user_id, task.id)
        assert stored.status == TaskStatus.COMPLETED.value
        assert stored.completed_at == now

    def test_claim_pending_skip_leaves_completed_at_empty(self, db_session, make_task, task_repository, test_user_id):
        task = make_task()
        task_repository.claim_pending(test_user_id, task.id, TaskStatus.SKIPPED, datetime.utcnow())
        db_session.commit()
        assert task_repository.get(test_user_id, task.id).completed_at is None

    def test_update_task(self, make_task, task_repository, test_user_id):
        task = make_task()
        updated = task_repository.update(task.model_copy(update={"title": "Renamed"}))
        assert updated.title == "Renamed"
        assert task_repository.get(test_user_id, task.id).title == "Renamed"

    def test_update_missing_task_raises(self, task_repository, sample_task):
        with pytest.raises(ValueError):
            task_repository.update(sample_task)

    def test_soft_delete_and_restore(self, make_task, task_repository, test_user_id):
        task = make_task()

        assert task_repository.delete(test_user_id, task.id) is True
        assert task_repository.get(test_user_id, task.id) is None
        assert task_repository.get_all(test_user_id) == []

        assert task_repository.restore(test_user_id, task.id) is True
        assert task_repository.get(test_user_id, task.id) is not None
        # Restoring an active task is a no-op success
        assert task_repository.restore(test_user_id, task.id) is True

    def test_purge(self, make_task, task_repository, test_user_id):
        task = make_task()
        assert task_repository.purge(test_user_id, task.id) is True
        assert task_repository.restore(test_user_id, task.id) is False
