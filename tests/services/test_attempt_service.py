"""Tests for the attempt lifecycle, answers and integrity repair."""

import random
import uuid
from unittest.mock import patch

import pytest

from skillcheck.api.core.exceptions import (
    AssignmentError,
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from skillcheck.core.db import Attempt, AttemptQuestion
from skillcheck.core.services import AttemptService, SelectionService


@pytest.fixture
def service(db_manager):
    selection = SelectionService(db_manager, rng=random.Random(5))
    return AttemptService(db_manager, selection, enable_dev_reset=True)


@pytest.fixture
def question_at(db_manager):
    """question_at(attempt_id, order) -> question id assigned to that slot."""
    def _lookup(attempt_id, order):
        with db_manager.get_session() as session:
            return session.query(AttemptQuestion).filter(
                AttemptQuestion.attempt_id == attempt_id,
                AttemptQuestion.question_order == order,
            ).one().question_id
    return _lookup


def _answer(question_id, index=0, time_spent=30):
    return {"question_id": str(question_id), "user_answer_index": index, "time_spent_seconds": time_spent}


class TestCreateAttempt:
    """Tests for AttemptService.create_attempt."""

    def test_create(self, service, user_id, load_attempt):
        result = service.create_attempt(user_id)

        assert result["total_questions"] == 60
        assert result["status"] == "in_progress"
        attempt = load_attempt(uuid.UUID(result["attempt_id"]))
        assert attempt.questions_answered == 0
        assert attempt.attempt_metadata["session_count"] == 1
        assert attempt.attempt_metadata["pause_count"] == 0

    def test_second_attempt_in_progress_conflicts(self, service, user_id):
        first = service.create_attempt(user_id)

        with pytest.raises(StateConflictError) as exc_info:
            service.create_attempt(user_id)

        assert exc_info.value.reason == "attempt_already_in_progress"
        assert exc_info.value.details["attempt_id"] == first["attempt_id"]

    def test_new_attempt_after_completion(self, service, make_attempt, user_id):
        make_attempt(user_id, status="completed")
        assert service.create_attempt(user_id)["status"] == "in_progress"

    def test_users_are_independent(self, service, user_id):
        service.create_attempt(user_id)
        assert service.create_attempt(uuid.uuid4())["status"] == "in_progress"


class TestListAttempts:
    """Tests for AttemptService.list_attempts."""

    def test_filter_and_limit(self, service, make_attempt, user_id):
        make_attempt(user_id, status="completed", correct=40)
        make_attempt(user_id, status="completed", correct=20)
        make_attempt(user_id, assigned=5)
        make_attempt(uuid.uuid4(), assigned=1)

        assert len(service.list_attempts(user_id)) == 3
        completed = service.list_attempts(user_id, status="completed")
        assert len(completed) == 2
        assert {a["correct_count"] for a in completed} == {40, 20}
        assert len(service.list_attempts(user_id, limit=0)) == 1

    def test_correct_count_hidden_while_in_progress(self, service, make_attempt, user_id):
        make_attempt(user_id, assigned=5)
        (attempt,) = service.list_attempts(user_id, status="in_progress")
        assert "correct_count" not in attempt
        assert attempt["questions_answered"] == 5

    def test_invalid_status(self, service, user_id):
        with pytest.raises(ValidationError):
            service.list_attempts(user_id, status="abandoned")


class TestDetailsAndPause:
    """Tests for details, pause and resume bookkeeping."""

    def test_details_include_next_question(self, service, seed_bank, user_id):
        seed_bank(per_cell=1)
        attempt_id = service.create_attempt(user_id)["attempt_id"]

        details = service.get_details(attempt_id, user_id)

        assert details["attempt"]["id"] == attempt_id
        assert "correct_count" not in details["attempt"]
        assert details["next_question"]["question_order"] == 1
        assert "correct_index" not in details["next_question"]

    def test_completed_details(self, service, make_attempt, user_id):
        attempt_id = make_attempt(user_id, status="completed", correct=50)

        details = service.get_details(attempt_id, user_id)

        assert details["next_question"] is None
        assert details["attempt"]["correct_count"] == 50

    def test_other_users_attempt_is_not_found(self, service, make_attempt, user_id):
        attempt_id = make_attempt(user_id, assigned=1)
        with pytest.raises(NotFoundError):
            service.get_details(attempt_id, uuid.uuid4())

    def test_malformed_attempt_id(self, service, user_id):
        with pytest.raises(ValidationError):
            service.get_details("not-an-id", user_id)

    def test_pause_then_resume(self, service, seed_bank, user_id, load_attempt):
        seed_bank(per_cell=1)
        attempt_id = service.create_attempt(user_id)["attempt_id"]

        result = service.pause(attempt_id, user_id, "pause")

        assert result == {"status": "in_progress", "message": "Attempt paused. Resume anytime."}
        metadata = load_attempt(uuid.UUID(attempt_id)).attempt_metadata
        assert metadata["pause_count"] == 1
        assert metadata["paused"] is True

        service.get_details(attempt_id, user_id)
        service.get_details(attempt_id, user_id)

        metadata = load_attempt(uuid.UUID(attempt_id)).attempt_metadata
        assert metadata["session_count"] == 2
        assert metadata["paused"] is False

    def test_pause_rejects_other_actions(self, service, user_id):
        attempt_id = service.create_attempt(user_id)["attempt_id"]
        with pytest.raises(ValidationError):
            service.pause(attempt_id, user_id, "resume")

    def test_pause_completed_attempt(self, service, make_attempt, user_id):
        attempt_id = make_attempt(user_id, status="completed")
        with pytest.raises(StateConflictError):
            service.pause(attempt_id, user_id, "pause")


class TestSubmitAnswer:
    """Tests for AttemptService.submit_answer."""

    def test_records_without_revealing_correctness(self, service, make_attempt, question_at, user_id, db_manager):
        attempt_id = make_attempt(user_id, assigned=1, answered=0)
        question_id = question_at(attempt_id, 1)

        result = service.submit_answer(attempt_id, user_id, _answer(question_id, index=0))

        assert result == {
            "recorded": True,
            "progress": {"questions_answered": 1, "total_questions": 60, "is_complete": False},
        }
        with db_manager.get_session() as session:
            row = session.query(AttemptQuestion).filter(AttemptQuestion.question_id == question_id).one()
            assert row.user_answer_index == 0
            assert row.is_correct is True
            assert row.time_spent_seconds == 30
            assert row.answered_at is not None

    def test_wrong_answer_scored_server_side(self, service, make_attempt, question_at, user_id, load_attempt):
        attempt_id = make_attempt(user_id, assigned=1, answered=0)

        service.submit_answer(attempt_id, user_id, _answer(question_at(attempt_id, 1), index=3))

        attempt = load_attempt(attempt_id)
        assert attempt.questions_answered == 1
        assert attempt.correct_count == 0
        assert attempt.attempt_metadata["time_spent_seconds"] == 30

    def test_last_answer_completes_attempt(self, service, make_attempt, question_at, user_id, load_attempt):
        attempt_id = make_attempt(user_id, assigned=60, answered=59)

        result = service.submit_answer(attempt_id, user_id, _answer(question_at(attempt_id, 60)))

        assert result["progress"] == {"questions_answered": 60, "total_questions": 60, "is_complete": True}
        attempt = load_attempt(attempt_id)
        assert attempt.status == "completed"
        assert attempt.completed_at is not None
        # 30 of the first 59 answers were correct, plus this one
        assert attempt.correct_count == 31

    def test_completion_blocked_when_slot_missing(self, service, make_attempt, question_at, user_id, load_attempt):
        attempt_id = make_attempt(user_id, orders=list(range(1, 60)) + [61], answered=59)

        result = service.submit_answer(attempt_id, user_id, _answer(question_at(attempt_id, 61)))

        assert result["progress"]["is_complete"] is False
        assert load_attempt(attempt_id).status == "in_progress"

    def test_out_of_range_slot_does_not_strand_attempt(
        self, service, make_attempt, seed_bank, question_at, user_id, count_rows, load_attempt
    ):
        seed_bank(per_cell=2)
        attempt_id = make_attempt(user_id, orders=list(range(1, 60)) + [61], answered=59)
        service.submit_answer(attempt_id, user_id, _answer(question_at(attempt_id, 61)))

        next_question = service.get_details(attempt_id, user_id)["next_question"]
        assert next_question["question_order"] == 60

        result = service.submit_answer(attempt_id, user_id, _answer(next_question["id"]))

        assert result["progress"] == {"questions_answered": 60, "total_questions": 60, "is_complete": True}
        assert load_attempt(attempt_id).status == "completed"
        assert count_rows(attempt_id) == 60

    def test_out_of_range_pending_row_is_not_served(self, service, make_attempt, seed_bank, user_id):
        seed_bank(per_cell=2)
        attempt_id = make_attempt(user_id, orders=[1, 2, 99], answered=2)

        assert service.get_details(attempt_id, user_id)["next_question"]["question_order"] == 3

    def test_counters_recomputed_from_rows(self, service, make_attempt, question_at, user_id, db_manager, load_attempt):
        attempt_id = make_attempt(user_id, assigned=10, answered=9)
        with db_manager.get_session() as session:
            attempt = session.query(Attempt).filter(Attempt.id == attempt_id).one()
            attempt.questions_answered = 2
            attempt.correct_count = 0

        service.submit_answer(attempt_id, user_id, _answer(question_at(attempt_id, 10)))

        attempt = load_attempt(attempt_id)
        assert attempt.questions_answered == 10
        assert attempt.correct_count == 6

    @pytest.mark.parametrize("payload, message", [
        ({}, "question_id is required"),
        ({"question_id": "nope", "user_answer_index": 0}, "question_id must be a valid id"),
        ({"question_id": str(uuid.uuid4())}, "user_answer_index is required"),
        ({"question_id": str(uuid.uuid4()), "user_answer_index": 4}, "user_answer_index must be an integer between 0 and 3"),
        ({"question_id": str(uuid.uuid4()), "user_answer_index": True}, "user_answer_index must be an integer between 0 and 3"),
        ({"question_id": str(uuid.uuid4()), "user_answer_index": "1"}, "user_answer_index must be an integer between 0 and 3"),
        (
            {"question_id": str(uuid.uuid4()), "user_answer_index": 1, "time_spent_seconds": -5},
            "time_spent_seconds must be a non-negative integer",
        ),
    ])
    def test_validation(self, service, make_attempt, user_id, payload, message):
        attempt_id = make_attempt(user_id, assigned=1, answered=0)

        with pytest.raises(ValidationError) as exc_info:
            service.submit_answer(attempt_id, user_id, payload)

        assert message in exc_info.value.details["errors"]

    def test_already_answered(self, service, make_attempt, question_at, user_id):
        attempt_id = make_attempt(user_id, assigned=2, answered=1)

        with pytest.raises(StateConflictError) as exc_info:
            service.submit_answer(attempt_id, user_id, _answer(question_at(attempt_id, 1)))

        assert exc_info.value.reason == "question_already_answered"

    def test_question_not_assigned(self, service, make_attempt, user_id):
        attempt_id = make_attempt(user_id, assigned=1, answered=0)

        with pytest.raises(StateConflictError) as exc_info:
            service.submit_answer(attempt_id, user_id, _answer(uuid.uuid4()))

        assert exc_info.value.reason == "question_not_assigned"

    def test_attempt_not_in_progress(self, service, make_attempt, question_at, user_id):
        attempt_id = make_attempt(user_id, status="completed")

        with pytest.raises(StateConflictError) as exc_info:
            service.submit_answer(attempt_id, user_id, _answer(question_at(attempt_id, 1)))

        assert exc_info.value.reason == "attempt_not_in_progress"

    def test_answer_for_any_pending_slot(self, service, make_attempt, question_at, user_id):
        attempt_id = make_attempt(user_id, assigned=3, answered=1)

        result = service.submit_answer(attempt_id, user_id, _answer(question_at(attempt_id, 3)))

        assert result["progress"]["questions_answered"] == 2


class TestFixAttempt:
    """Tests for AttemptService.fix_attempt."""

    def test_reopens_short_completed_attempt(self, service, make_attempt, user_id, load_attempt):
        attempt_id = make_attempt(user_id, assigned=45, status="completed")

        result = service.fix_attempt(attempt_id, user_id)

        assert result["fixed"] is True
        assert result["analysis"]["actual_assigned"] == 45
        assert result["analysis"]["gap"] == 15
        attempt = load_attempt(attempt_id)
        assert attempt.status == "in_progress"
        assert attempt.completed_at is None
        assert attempt.questions_answered == 45
        assert attempt.correct_count == 0

    def test_reports_out_of_range_orders(self, service, make_attempt, user_id, load_attempt):
        attempt_id = make_attempt(user_id, orders=list(range(1, 60)) + [61], status="completed")

        result = service.fix_attempt(attempt_id, user_id)

        assert result["fixed"] is True
        assert result["analysis"]["actual_assigned"] == 59
        assert result["analysis"]["out_of_range_orders"] == [61]
        assert load_attempt(attempt_id).status == "in_progress"

    def test_idempotent(self, service, make_attempt, user_id):
        attempt_id = make_attempt(user_id, assigned=45, status="completed")
        service.fix_attempt(attempt_id, user_id)

        second = service.fix_attempt(attempt_id, user_id)

        assert second["fixed"] is False
        assert second["message"] == "No fix needed"

    def test_intact_attempt_untouched(self, service, make_attempt, user_id, load_attempt):
        attempt_id = make_attempt(user_id, status="completed")

        assert service.fix_attempt(attempt_id, user_id)["fixed"] is False
        assert load_attempt(attempt_id).status == "completed"


class TestRecoverAttempt:
    """Tests for AttemptService.recover_attempt."""

    def test_backfills_missing_slots(self, service, make_attempt, seed_bank, user_id, count_rows, load_attempt):
        seed_bank(per_cell=2)
        attempt_id = make_attempt(user_id, assigned=45, status="completed")

        result = service.recover_attempt(attempt_id, user_id)

        assert result["recovered"] is True
        analysis = result["analysis"]
        assert analysis["gaps_detected"] == 15
        assert analysis["missing_orders"] == list(range(46, 61))
        assert all(r["success"] for r in analysis["recovery_results"])
        assert count_rows(attempt_id) == 60
        attempt = load_attempt(attempt_id)
        assert attempt.status == "in_progress"
        assert attempt.completed_at is None
        assert attempt.questions_answered == 45

    def test_partial_failure_keeps_status(self, service, make_attempt, seed_bank, user_id, count_rows, load_attempt):
        seed_bank(per_cell=2)
        attempt_id = make_attempt(user_id, assigned=45, status="completed")
        assigner = service._selection.assigner
        original = assigner.assign_fallback

        def flaky(attempt_key, order):
            if order == 50:
                raise AssignmentError(details={"question_order": order})
            return original(attempt_key, order)

        with patch.object(assigner, "assign_fallback", side_effect=flaky):
            result = service.recover_attempt(attempt_id, user_id)

        assert result["recovered"] is False
        assert result["message"] == "Backfilled 14 of 15 missing questions"
        failed = [r for r in result["analysis"]["recovery_results"] if not r["success"]]
        assert [r["order"] for r in failed] == [50]
        assert count_rows(attempt_id) == 59
        assert load_attempt(attempt_id).status == "completed"

    def test_no_gaps(self, service, make_attempt, user_id):
        attempt_id = make_attempt(user_id, status="completed")

        result = service.recover_attempt(attempt_id, user_id)

        assert result["recovered"] is False
        assert result["message"] == "No gaps detected"

    def test_requires_completed_attempt(self, service, make_attempt, user_id):
        attempt_id = make_attempt(user_id, assigned=10)

        with pytest.raises(StateConflictError) as exc_info:
            service.recover_attempt(attempt_id, user_id)

        assert exc_info.value.reason == "attempt_not_completed"


class TestResetAttempts:
    """Tests for the development reset."""

    def test_disabled_by_default(self, db_manager, user_id):
        service = AttemptService(db_manager, SelectionService(db_manager))
        with pytest.raises(AuthorizationError) as exc_info:
            service.reset_attempts(user_id)
        assert exc_info.value.reason == "dev_reset_disabled"

    def test_deletes_only_callers_attempts(self, service, make_attempt, user_id, count_rows):
        attempt_id = make_attempt(user_id, assigned=3, status="completed")
        make_attempt(user_id, assigned=1)
        other = make_attempt(uuid.uuid4(), assigned=2)

        assert service.reset_attempts(user_id) == {"deleted": 2}
        assert service.list_attempts(user_id) == []
        assert count_rows(attempt_id) == 0
        assert count_rows(other) == 2
