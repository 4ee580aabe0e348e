"""Tests for the completion processor (task completion -> stat XP)."""

import pytest
import uuid
from datetime import datetime

from questlog.database.character_stat_repository import CharacterStatRepository
from questlog.database.models import CharacterStatDB, TaskDB
from questlog.database.repository import TaskRepository
from questlog.database.task_completion_repository import TaskCompletionRepository
from questlog.engine.completion import complete_task, get_completion, list_completed_tasks
from questlog.errors import NotFoundError, StateConflictError, ValidationError
from questlog.models.task import TaskSource, TaskStatus


def _stat(db_session, user_id, category):
    return next(s for s in CharacterStatRepository(db_session).get_stats(user_id) if s.category == category)


class TestCompleteTask:
    """Happy paths."""

    def test_completes_and_awards_xp(self, db_session, character, make_task, test_user_id):
        task = make_task()
        now = datetime(2026, 4, 1, 8, 30, 0)

        result = complete_task(db_session, test_user_id, task.id, 120, {"Fitness": 120}, feedback="Felt great", now=now)

        assert result.task.status == TaskStatus.COMPLETED.value
        assert result.task.completed_at == now
        assert result.completion.actual_xp == 120
        assert result.completion.feedback == "Felt great"
        assert result.feedback_required is False
        assert len(result.xp_results) == 1
        xp = result.xp_results[0]
        assert xp.stat_category == "Fitness"
        assert (xp.old_level, xp.new_level, xp.leveled_up) == (1, 1, False)
        assert xp.new_total_xp == 120

        stat = _stat(db_session, test_user_id, "Fitness")
        assert stat.total_xp == 120
        assert stat.current_level == 1
        assert stat.current_xp == 120

    def test_level_up(self, db_session, character, make_task, test_user_id):
        task = make_task()

        result = complete_task(db_session, test_user_id, task.id, 350, {"Fitness": 350})

        xp = result.xp_results[0]
        assert xp.leveled_up is True
        assert xp.old_level == 1
        assert xp.new_level == 2
        assert xp.level_title == "Fitness Apprentice"
        stat = _stat(db_session, test_user_id, "Fitness")
        assert stat.current_level == 2
        assert stat.current_xp == 50
        assert stat.level_title == "Fitness Apprentice"

    def test_multiple_stats(self, db_session, character, make_task, test_user_id):
        task = make_task(target_stats=["Fitness", "Learning"])

        result = complete_task(db_session, test_user_id, task.id, 80, {"Fitness": 50, "Learning": 30})

        assert {r.stat_category: r.new_total_xp for r in result.xp_results} == {"Fitness": 50, "Learning": 30}

    def test_negative_award_clamps_at_zero(self, db_session, character, make_task, test_user_id):
        complete_task(db_session, test_user_id, make_task().id, 100, {"Fitness": 100})

        result = complete_task(db_session, test_user_id, make_task().id, -500, {"Fitness": -500})

        assert result.xp_results[0].new_total_xp == 0
        assert result.xp_results[0].new_level == 1
        assert result.completion.actual_xp == -500
        stat = _stat(db_session, test_user_id, "Fitness")
        assert stat.total_xp == 0
        assert stat.current_level == 1

    def test_without_awards_needs_no_character(self, db_session, make_task, test_user_id):
        task = make_task()
        result = complete_task(db_session, test_user_id, task.id, 10)
        assert result.xp_results == []
        assert result.completion.stat_awards == {}

    def test_ai_tasks_request_feedback(self, db_session, make_task, test_user_id):
        task = make_task(source=TaskSource.AI)
        result = complete_task(db_session, test_user_id, task.id, 10)
        assert result.feedback_required is True


class TestCompleteTaskFailures:
    """Precondition failures write nothing."""

    def test_unknown_stat_mutates_nothing(self, db_session, character, make_task, test_user_id):
        task = make_task()

        with pytest.raises(ValidationError) as exc:
            complete_task(db_session, test_user_id, task.id, 100, {"Fitness": 50, "Cooking": 50})
        assert exc.value.field == "stat_awards"

        assert _stat(db_session, test_user_id, "Fitness").total_xp == 0
        assert TaskCompletionRepository(db_session).get_for_task(test_user_id, task.id) is None
        assert TaskRepository(db_session).get(test_user_id, task.id).status == TaskStatus.PENDING.value

    def test_double_completion_conflicts(self, db_session, character, make_task, test_user_id):
        task = make_task()
        complete_task(db_session, test_user_id, task.id, 50, {"Fitness": 50})

        with pytest.raises(StateConflictError):
            complete_task(db_session, test_user_id, task.id, 50, {"Fitness": 50})

        assert _stat(db_session, test_user_id, "Fitness").total_xp == 50
        assert TaskCompletionRepository(db_session).count_for_user(test_user_id) == 1

    def test_skipped_task_cannot_be_completed(self, db_session, make_task, test_user_id):
        task = make_task(status=TaskStatus.SKIPPED)
        with pytest.raises(StateConflictError):
            complete_task(db_session, test_user_id, task.id, 10)

    def test_other_users_task_is_not_found(self, db_session, character, make_task, other_user_id):
        task = make_task()
        with pytest.raises(NotFoundError):
            complete_task(db_session, other_user_id, task.id, 10)

    def test_missing_task(self, db_session, test_user_id):
        with pytest.raises(NotFoundError):
            complete_task(db_session, test_user_id, str(uuid.uuid4()), 10)

    def test_awards_without_character(self, db_session, make_task, test_user_id):
        task = make_task()
        with pytest.raises(NotFoundError):
            complete_task(db_session, test_user_id, task.id, 10, {"Fitness": 10})

    @pytest.mark.parametrize("actual_xp", ["10", 1.5, True])
    def test_actual_xp_must_be_an_integer(self, db_session, make_task, test_user_id, actual_xp):
        with pytest.raises(ValidationError):
            complete_task(db_session, test_user_id, make_task().id, actual_xp)

    def test_malformed_ids(self, db_session, test_user_id):
        with pytest.raises(ValidationError):
            complete_task(db_session, test_user_id, "task-1", 10)


class TestCompletionAtomicity:
    """Failures after the first write roll the whole completion back."""

    def test_failed_completion_insert_rolls_back_stats(self, db_session, character, make_task, test_user_id, monkeypatch):
        task = make_task(target_stats=["Fitness", "Learning"])

        def broken_add(self, completion):
            raise RuntimeError("disk full")

        monkeypatch.setattr(TaskCompletionRepository, "add", broken_add)

        with pytest.raises(RuntimeError):
            complete_task(db_session, test_user_id, task.id, 400, {"Fitness": 400, "Learning": 100})

        fitness = _stat(db_session, test_user_id, "Fitness")
        assert (fitness.total_xp, fitness.current_level) == (0, 1)
        assert _stat(db_session, test_user_id, "Learning").total_xp == 0
        assert TaskRepository(db_session).get(test_user_id, task.id).status == TaskStatus.PENDING.value

    def test_lost_race_awards_nothing(self, db_session, character, make_task, test_user_id, monkeypatch):
        task = make_task()
        claim_pending = TaskRepository.claim_pending

        def racing_claim(self, user_id, task_id, new_status, now):
            # Another request completes the task after the pending check.
            self.db.query(TaskDB).filter(TaskDB.id == task_id).update(
                {TaskDB.status: TaskStatus.COMPLETED.value}, synchronize_session=False
            )
            return claim_pending(self, user_id, task_id, new_status, now)

        monkeypatch.setattr(TaskRepository, "claim_pending", racing_claim)

        with pytest.raises(StateConflictError):
            complete_task(db_session, test_user_id, task.id, 80, {"Fitness": 80})

        assert _stat(db_session, test_user_id, "Fitness").total_xp == 0
        assert TaskCompletionRepository(db_session).get_for_task(test_user_id, task.id) is None

    def test_stat_rows_are_reloaded_under_lock(self, db_session, character):
        repo = CharacterStatRepository(db_session)
        stat = repo.stats_by_category(character.id)["Fitness"]
        db_session.query(CharacterStatDB).filter(CharacterStatDB.id == stat.id).update(
            {CharacterStatDB.total_xp: 40}, synchronize_session=False
        )

        assert repo.stats_by_category(character.id)["Fitness"].total_xp == 0
        assert repo.stats_by_category(character.id, for_update=True)["Fitness"].total_xp == 40


class TestCompletionHistory:
    def test_get_completion(self, db_session, make_task, test_user_id):
        task = make_task()
        complete_task(db_session, test_user_id, task.id, 15)
        assert get_completion(db_session, test_user_id, task.id).actual_xp == 15

    def test_get_completion_for_pending_task(self, db_session, make_task, test_user_id):
        with pytest.raises(NotFoundError):
            get_completion(db_session, test_user_id, make_task().id)

    def test_history_newest_first(self, db_session, make_task, test_user_id):
        first, second = make_task(title="First"), make_task(title="Second")
        complete_task(db_session, test_user_id, first.id, 1, now=datetime(2026, 1, 1))
        complete_task(db_session, test_user_id, second.id, 2, now=datetime(2026, 1, 2))

        rows, total = list_completed_tasks(db_session, test_user_id, limit=1)
        assert total == 2
        assert [task.title for task, _ in rows] == ["Second"]

        rows, _ = list_completed_tasks(db_session, test_user_id, limit=1, offset=1)
        assert [task.title for task, _ in rows] == ["First"]

    def test_history_limit_bounds(self, db_session, test_user_id):
        with pytest.raises(ValidationError):
            list_completed_tasks(db_session, test_user_id, limit=0)
        with pytest.raises(ValidationError):
            list_completed_tasks(db_session, test_user_id, limit=101)
