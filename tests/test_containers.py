"""Tests for quests and experiments."""

import pytest
import uuid
from datetime import datetime, timedelta, timezone

from questlog.engine.completion import complete_task, get_completion
from questlog.engine.containers import (
    container_progress,
    create_experiment,
    create_quest,
    delete_container,
    get_container,
)
from questlog.engine.task_state import TaskService
from questlog.errors import NotFoundError, ValidationError
from questlog.models.container import ContainerKind
from questlog.models.task import TaskSource, TaskStatus


class TestCreateContainers:
    def test_create_quest(self, db_session, test_user_id):
        quest = create_quest(db_session, test_user_id, "Learn Spanish", goal_description="Hold a conversation")
        assert quest.status == "active"
        assert get_container(db_session, test_user_id, "quest", quest.id).title == "Learn Spanish"

    def test_quest_end_before_start(self, db_session, test_user_id):
        start = datetime(2026, 5, 1)
        with pytest.raises(ValidationError):
            create_quest(db_session, test_user_id, "Backwards", start_date=start, end_date=start - timedelta(days=1))

    def test_experiment_end_date_from_duration(self, db_session, test_user_id):
        start = datetime(2026, 5, 1)
        experiment = create_experiment(db_session, test_user_id, "No sugar", 14, start_date=start)
        assert experiment.end_date == datetime(2026, 5, 15)

    @pytest.mark.parametrize("duration", [0, -3, True])
    def test_experiment_duration_must_be_positive(self, db_session, test_user_id, duration):
        with pytest.raises(ValidationError):
            create_experiment(db_session, test_user_id, "Bad", duration)

    def test_aware_end_date_is_stored_as_naive_utc(self, db_session, test_user_id):
        end = datetime(2099, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))

        quest = create_quest(db_session, test_user_id, "Far away", end_date=end)

        assert quest.end_date == datetime(2099, 1, 1, 0, 0)
        assert quest.end_date.tzinfo is None
        assert quest.start_date.tzinfo is None

    def test_aware_end_date_before_start(self, db_session, test_user_id):
        with pytest.raises(ValidationError):
            create_quest(db_session, test_user_id, "Past", end_date=datetime(2000, 1, 1, tzinfo=timezone.utc))

    def test_experiment_with_aware_start(self, db_session, test_user_id):
        start = datetime(2026, 5, 1, tzinfo=timezone.utc)
        experiment = create_experiment(db_session, test_user_id, "Journal", 10, start_date=start)
        assert experiment.start_date == datetime(2026, 5, 1)
        assert experiment.end_date == datetime(2026, 5, 11)

    def test_unknown_status(self, db_session, test_user_id):
        with pytest.raises(ValidationError):
            create_quest(db_session, test_user_id, "Quest", status="done")

    def test_other_users_container_is_not_found(self, db_session, test_user_id, other_user_id):
        quest = create_quest(db_session, test_user_id, "Mine")
        with pytest.raises(NotFoundError):
            get_container(db_session, other_user_id, "quest", quest.id)


class TestContainerProgress:
    def test_progress_is_derived_from_tasks(self, db_session, test_user_id):
        quest = create_quest(db_session, test_user_id, "Get fit")
        service = TaskService(db_session)
        done = service.create_task(test_user_id, "quest", "Run", source_id=quest.id, estimated_xp=30)
        service.create_task(test_user_id, "quest", "Swim", source_id=quest.id, estimated_xp=20)
        complete_task(db_session, test_user_id, done.id, 40)

        progress = container_progress(db_session, test_user_id, ContainerKind.QUEST, quest.id)

        assert progress.total_tasks == 2
        assert progress.completed_tasks == 1
        assert progress.pending_tasks == 1
        assert progress.completion_rate == 50
        assert progress.estimated_xp == 50
        assert progress.earned_xp == 40

    def test_empty_container(self, db_session, test_user_id):
        experiment = create_experiment(db_session, test_user_id, "Meditate", 7)
        progress = container_progress(db_session, test_user_id, "experiment", experiment.id)
        assert progress.total_tasks == 0
        assert progress.completion_rate == 0


class TestDeleteContainer:
    def test_tasks_are_detached_to_ad_hoc(self, db_session, character, test_user_id):
        quest = create_quest(db_session, test_user_id, "Read more")
        service = TaskService(db_session)
        done = service.create_task(test_user_id, "quest", "Book 1", source_id=quest.id, target_stats=["Learning"])
        open_task = service.create_task(test_user_id, "quest", "Book 2", source_id=quest.id)
        complete_task(db_session, test_user_id, done.id, 60, {"Learning": 60})

        detached = delete_container(db_session, test_user_id, ContainerKind.QUEST, quest.id)

        assert detached == 2
        finished = service.get_task(test_user_id, done.id)
        assert finished.source == TaskSource.AD_HOC.value
        assert finished.source_id is None
        assert finished.status == TaskStatus.COMPLETED.value
        assert finished.target_stats == ["Learning"]
        assert get_completion(db_session, test_user_id, done.id).actual_xp == 60
        assert service.get_task(test_user_id, open_task.id).source == TaskSource.AD_HOC.value
        with pytest.raises(NotFoundError):
            get_container(db_session, test_user_id, "quest", quest.id)

    def test_soft_deleted_tasks_are_detached_too(self, db_session, test_user_id):
        experiment = create_experiment(db_session, test_user_id, "Early rising", 21)
        service = TaskService(db_session)
        task = service.create_task(test_user_id, "experiment", "Wake at 6", source_id=experiment.id)
        service.delete_task(test_user_id, task.id)

        assert delete_container(db_session, test_user_id, "experiment", experiment.id) == 1

        restored = service.restore_task(test_user_id, task.id)
        assert restored.source == TaskSource.AD_HOC.value
        assert restored.source_id is None

    def test_other_users_container(self, db_session, test_user_id, other_user_id):
        quest = create_quest(db_session, test_user_id, "Mine")
        with pytest.raises(NotFoundError):
            delete_container(db_session, other_user_id, "quest", quest.id)

    def test_missing_container(self, db_session, test_user_id):
        with pytest.raises(NotFoundError):
            delete_container(db_session, test_user_id, "quest", str(uuid.uuid4()))

    def test_unknown_kind(self, db_session, test_user_id):
        with pytest.raises(ValidationError):
            delete_container(db_session, test_user_id, "project", str(uuid.uuid4()))
