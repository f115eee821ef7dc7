"""Attempt service implementation.

Owns the attempt lifecycle:

- create / list / details (with resume bookkeeping) / pause
- answer submission, which scores server-side and never reveals correctness
- completion validation against the physical AttemptQuestion rows
- the two integrity repairs, ``fix`` (counter drift) and ``recover``
  (missing slots), both safe to run repeatedly
- a development-only reset

Counters are always recomputed from AttemptQuestion rows; the stored values
are never trusted over what is physically present.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...api.core.exceptions import (
    AssignmentError,
    AuthorizationError,
    StateConflictError,
    ValidationError,
)
from ..db.models import Attempt, AttemptQuestion
from ..evaluate.config import POLICY, SelectionConfig
from ..evaluate.types import AttemptStatus
from .base import BaseService, _parse_uuid
from .selection_service import in_sequence

if TYPE_CHECKING:
    from ..db import DatabaseManager
    from .selection_service import SelectionService

DEFAULT_LIST_LIMIT = 10
MAX_LIST_LIMIT = 100


def _now() -> datetime:
    return datetime.utcnow()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def serialize_attempt(attempt: Attempt) -> Dict[str, Any]:
    """Client view of an attempt. correct_count stays hidden until completion."""
    data = {
        "id": str(attempt.id),
        "status": attempt.status,
        "questions_answered": attempt.questions_answered,
        "total_questions": attempt.total_questions,
        "started_at": _iso(attempt.started_at),
        "completed_at": _iso(attempt.completed_at),
    }
    if attempt.status == AttemptStatus.COMPLETED.value:
        data["correct_count"] = attempt.correct_count
    return data


class AttemptService(BaseService):
    """Service for attempt lifecycle, answers and integrity repair.

    Args:
        db_manager: DatabaseManager for persistence
        selection_service: Picks and reserves the next question
        config: Selection configuration
        enable_dev_reset: Allow the destructive reset operation
    """

    def __init__(
        self,
        db_manager: "DatabaseManager",
        selection_service: "SelectionService",
        config: Optional[SelectionConfig] = None,
        enable_dev_reset: bool = False
    ):
        super().__init__(db_manager, config)
        self._selection = selection_service
        self._enable_dev_reset = enable_dev_reset

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def create_attempt(self, user_id: Any) -> Dict[str, Any]:
        """Start a new attempt for user_id.

        Raises:
            StateConflictError: If the user already has an attempt in progress
        """
        self._validate_database_available()
        user_key = _parse_uuid(user_id, "user_id")

        with self._db_manager.get_session() as session:
            existing = (
                session.query(Attempt)
                .filter(
                    Attempt.user_id == user_key,
                    Attempt.status == AttemptStatus.IN_PROGRESS.value,
                )
                .first()
            )
            if existing is not None:
                raise StateConflictError(
                    "An attempt is already in progress",
                    details={"attempt_id": str(existing.id)},
                    reason="attempt_already_in_progress",
                )

            now = _now()
            attempt = Attempt(
                user_id=user_key,
                status=AttemptStatus.IN_PROGRESS.value,
                total_questions=POLICY.total_questions,
                questions_answered=0,
                correct_count=0,
                started_at=now,
                attempt_metadata={
                    "session_count": 1,
                    "pause_count": 0,
                    "time_spent_seconds": 0,
                    "last_session_at": now.isoformat(),
                    "paused": False,
                },
            )
            session.add(attempt)
            session.flush()

            self._log_operation("attempt_created", attempt_id=attempt.id, user_id=user_key)
            return {
                "attempt_id": str(attempt.id),
                "total_questions": attempt.total_questions,
                "status": attempt.status,
            }

    def list_attempts(
        self,
        user_id: Any,
        status: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """The user's attempts, newest first."""
        self._validate_database_available()
        user_key = _parse_uuid(user_id, "user_id")

        if status is not None and status not in {s.value for s in AttemptStatus}:
            raise ValidationError(f"Invalid status: {status}", details={"field": "status"})
        limit = DEFAULT_LIST_LIMIT if limit is None else max(1, min(int(limit), MAX_LIST_LIMIT))

        with self._db_manager.get_session() as session:
            query = session.query(Attempt).filter(Attempt.user_id == user_key)
            if status:
                query = query.filter(Attempt.status == status)
            attempts = query.order_by(Attempt.created_at.desc()).limit(limit).all()
            return [serialize_attempt(a) for a in attempts]

    def get_details(self, attempt_id: Any, user_id: Any) -> Dict[str, Any]:
        """Attempt state plus the question to answer next.

        The first fetch after a pause counts as a new session.
        """
        self._validate_database_available()

        with self._db_manager.get_session() as session:
            attempt = self._get_owned_attempt(session, attempt_id, user_id)
            metadata = dict(attempt.attempt_metadata or {})
            if metadata.get("paused") and attempt.status == AttemptStatus.IN_PROGRESS.value:
                metadata["paused"] = False
                metadata["session_count"] = int(metadata.get("session_count", 0) or 0) + 1
                metadata["last_session_at"] = _now().isoformat()
                attempt.attempt_metadata = metadata
                self._log_operation(
                    "attempt_resumed",
                    attempt_id=attempt.id,
                    session_count=metadata["session_count"],
                )
            attempt_key = attempt.id
            in_progress = attempt.status == AttemptStatus.IN_PROGRESS.value

        next_question = self._selection.next_question(attempt_key) if in_progress else None

        with self._db_manager.get_session() as session:
            attempt = session.query(Attempt).filter(Attempt.id == attempt_key).first()
            return {
                "attempt": serialize_attempt(attempt),
                "next_question": next_question,
            }

    def pause(self, attempt_id: Any, user_id: Any, action: Optional[str]) -> Dict[str, Any]:
        """Record a pause. Status is not changed.

        Raises:
            ValidationError: If action is anything other than "pause"
            StateConflictError: If the attempt is already completed
        """
        if action != "pause":
            raise ValidationError("Invalid action", details={"field": "action", "allowed": ["pause"]})
        self._validate_database_available()

        with self._db_manager.get_session() as session:
            attempt = self._get_owned_attempt(session, attempt_id, user_id, for_update=True)
            if attempt.status != AttemptStatus.IN_PROGRESS.value:
                raise StateConflictError("Attempt is not in progress", reason="attempt_not_in_progress")

            metadata = dict(attempt.attempt_metadata or {})
            metadata["pause_count"] = int(metadata.get("pause_count", 0) or 0) + 1
            metadata["last_session_at"] = _now().isoformat()
            metadata["paused"] = True
            attempt.attempt_metadata = metadata

            self._log_operation("attempt_paused", attempt_id=attempt.id, pause_count=metadata["pause_count"])
            return {
                "status": attempt.status,
                "message": "Attempt paused. Resume anytime.",
            }

    # ------------------------------------------------------------------ #
    # Answers
    # ------------------------------------------------------------------ #

    def submit_answer(self, attempt_id: Any, user_id: Any, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Record an answer for an assigned, unanswered question.

        Correctness is computed and stored but never returned.

        Raises:
            ValidationError: Missing/invalid question_id, answer index or time
            NotFoundError: Attempt missing or owned by someone else
            StateConflictError: Attempt not in progress, question not part of
                the attempt, or question already answered
        """
        question_key, answer_index, time_spent = self._validate_answer_payload(payload)
        self._validate_database_available()

        with self._db_manager.get_session() as session:
            attempt = self._get_owned_attempt(session, attempt_id, user_id, for_update=True)
            if attempt.status != AttemptStatus.IN_PROGRESS.value:
                raise StateConflictError("Attempt is not in progress", reason="attempt_not_in_progress")

            row = (
                session.query(AttemptQuestion)
                .filter(
                    AttemptQuestion.attempt_id == attempt.id,
                    AttemptQuestion.question_id == question_key,
                )
                .first()
            )
            if row is None:
                raise StateConflictError(
                    "Question is not assigned to this attempt",
                    details={"question_id": str(question_key)},
                    reason="question_not_assigned",
                )
            if row.is_answered:
                raise StateConflictError(
                    "Question has already been answered",
                    details={"question_id": str(question_key)},
                    reason="question_already_answered",
                )

            now = _now()
            row.user_answer_index = answer_index
            row.is_correct = answer_index == row.mcq.correct_index
            row.answered_at = now
            row.time_spent_seconds = time_spent
            session.flush()

            self._refresh_counters(session, attempt)

            metadata = dict(attempt.attempt_metadata or {})
            metadata["time_spent_seconds"] = int(metadata.get("time_spent_seconds", 0) or 0) + (time_spent or 0)
            metadata["last_session_at"] = now.isoformat()
            attempt.attempt_metadata = metadata

            if attempt.questions_answered >= attempt.total_questions:
                self._complete_if_intact(session, attempt, now)

            self._log_operation(
                "answer_recorded",
                attempt_id=attempt.id,
                order=row.question_order,
                answered=attempt.questions_answered,
                total=attempt.total_questions,
            )
            return {
                "recorded": True,
                "progress": {
                    "questions_answered": attempt.questions_answered,
                    "total_questions": attempt.total_questions,
                    "is_complete": attempt.status == AttemptStatus.COMPLETED.value,
                },
            }

    def _validate_answer_payload(self, payload: Optional[Dict[str, Any]]):
        payload = payload or {}
        errors = []

        question_id = payload.get("question_id")
        question_key = None
        if not question_id:
            errors.append("question_id is required")
        else:
            try:
                question_key = _parse_uuid(question_id, "question_id")
            except ValidationError:
                errors.append("question_id must be a valid id")

        answer_index = payload.get("user_answer_index")
        if answer_index is None:
            errors.append("user_answer_index is required")
        elif not _is_int(answer_index) or not 0 <= answer_index <= 3:
            errors.append("user_answer_index must be an integer between 0 and 3")

        time_spent = payload.get("time_spent_seconds")
        if time_spent is not None and (not _is_int(time_spent) or time_spent < 0):
            errors.append("time_spent_seconds must be a non-negative integer")

        if errors:
            raise ValidationError(errors, details={"errors": errors})
        return question_key, answer_index, time_spent

    def _slot_orders(self, session: Session, attempt: Attempt):
        """(orders inside 1..total, sorted orders outside it) for the attempt's rows."""
        orders = [
            r[0] for r in session.query(AttemptQuestion.question_order)
            .filter(AttemptQuestion.attempt_id == attempt.id)
            .all()
        ]
        in_range = {o for o in orders if in_sequence(o, attempt.total_questions)}
        return in_range, sorted(o for o in orders if o not in in_range)

    def _refresh_counters(self, session: Session, attempt: Attempt) -> None:
        """Recompute questions_answered / correct_count from the rows in 1..total."""
        rows = [
            (index, is_correct)
            for order, index, is_correct in session.query(
                AttemptQuestion.question_order, AttemptQuestion.user_answer_index, AttemptQuestion.is_correct
            )
            .filter(AttemptQuestion.attempt_id == attempt.id)
            .all()
            if in_sequence(order, attempt.total_questions)
        ]
        answered = sum(1 for index, _ in rows if index is not None)
        correct = sum(1 for index, is_correct in rows if index is not None and is_correct)
        attempt.questions_answered = min(answered, attempt.total_questions)
        attempt.correct_count = min(correct, attempt.questions_answered)

    def _complete_if_intact(self, session: Session, attempt: Attempt, now: datetime) -> bool:
        """Mark the attempt completed only when every slot 1..total is present.

        Rows outside 1..total are reported and removed on completion, so a
        completed attempt holds exactly the orders 1..total.
        """
        total = attempt.total_questions
        in_range, out_of_range = self._slot_orders(session, attempt)
        missing = sorted(set(range(1, total + 1)) - in_range)
        intact = not missing

        self._log_operation(
            "completion_validation",
            attempt_id=attempt.id,
            assigned=len(in_range),
            expected=total,
            out_of_range=len(out_of_range),
            intact=intact,
        )
        if not intact:
            self._logger.warning(
                f"attempt_completion_blocked: attempt_id={attempt.id}, assigned={len(in_range)}, "
                f"expected={total}, missing_orders={missing}, out_of_range_orders={out_of_range}"
            )
            return False

        if out_of_range:
            self._logger.warning(
                f"attempt_out_of_range_orders_removed: attempt_id={attempt.id}, orders={out_of_range}"
            )
            session.query(AttemptQuestion).filter(
                AttemptQuestion.attempt_id == attempt.id,
                or_(AttemptQuestion.question_order < 1, AttemptQuestion.question_order > total),
            ).delete(synchronize_session=False)

        attempt.status = AttemptStatus.COMPLETED.value
        attempt.completed_at = now
        return True

    # ------------------------------------------------------------------ #
    # Integrity repair
    # ------------------------------------------------------------------ #

    def fix_attempt(self, attempt_id: Any, user_id: Any) -> Dict[str, Any]:
        """Reopen a completed attempt that has fewer rows than questions.

        Idempotent: once reopened, a second call finds nothing to fix.
        """
        self._validate_database_available()

        with self._db_manager.get_session() as session:
            attempt = self._get_owned_attempt(session, attempt_id, user_id, for_update=True)
            in_range, out_of_range = self._slot_orders(session, attempt)
            assigned = len(in_range)

            analysis = {
                "status": attempt.status,
                "total_questions": attempt.total_questions,
                "stored_questions_answered": attempt.questions_answered,
                "actual_assigned": assigned,
                "gap": max(0, attempt.total_questions - assigned),
                "out_of_range_orders": out_of_range,
            }
            self._log_operation("fix_attempt_analysis", attempt_id=attempt.id, **analysis)

            needs_fix = (
                attempt.status == AttemptStatus.COMPLETED.value
                and assigned < attempt.total_questions
            )
            if not needs_fix:
                return {"fixed": False, "message": "No fix needed", "analysis": analysis}

            attempt.status = AttemptStatus.IN_PROGRESS.value
            attempt.completed_at = None
            attempt.questions_answered = assigned
            attempt.correct_count = 0
            return {
                "fixed": True,
                "message": f"Attempt reopened at {assigned} of {attempt.total_questions} questions",
                "analysis": analysis,
            }

    def recover_attempt(self, attempt_id: Any, user_id: Any) -> Dict[str, Any]:
        """Backfill every missing slot of a completed attempt.

        Status flips back to in_progress only when every backfill succeeds;
        inserted rows are kept either way.

        Raises:
            StateConflictError: If the attempt is not completed
        """
        self._validate_database_available()

        with self._db_manager.get_session() as session:
            attempt = self._get_owned_attempt(session, attempt_id, user_id)
            if attempt.status != AttemptStatus.COMPLETED.value:
                raise StateConflictError(
                    "Only completed attempts can be recovered",
                    reason="attempt_not_completed",
                )
            attempt_key = attempt.id
            total = attempt.total_questions
            orders, out_of_range = self._slot_orders(session, attempt)

        missing = sorted(set(range(1, total + 1)) - orders)
        analysis = {
            "expected_questions": total,
            "actual_assigned_before": len(orders),
            "missing_orders": missing,
            "gaps_detected": len(missing),
            "out_of_range_orders": out_of_range,
            "recovery_results": [],
        }
        self._log_operation(
            "recovery_analysis",
            attempt_id=attempt_key,
            expected=total,
            assigned=len(orders),
            missing=len(missing),
        )
        if not missing:
            return {"recovered": False, "message": "No gaps detected", "analysis": analysis}

        results = analysis["recovery_results"]
        for order in missing:
            try:
                outcome = self._selection.assigner.assign_fallback(attempt_key, order)
                results.append({"order": order, "success": True, "question_id": str(outcome.question_id)})
            except (AssignmentError, SQLAlchemyError) as e:
                self._logger.warning(
                    f"recovery_backfill_failed: attempt_id={attempt_key}, order={order}, "
                    f"error={e.__class__.__name__}: {e}"
                )
                results.append({"order": order, "success": False, "error": str(e)})

        failed = [r["order"] for r in results if not r["success"]]
        if failed:
            return {
                "recovered": False,
                "message": f"Backfilled {len(missing) - len(failed)} of {len(missing)} missing questions",
                "analysis": analysis,
            }

        with self._db_manager.get_session() as session:
            attempt = (
                session.query(Attempt)
                .filter(Attempt.id == attempt_key)
                .with_for_update()
                .first()
            )
            attempt.status = AttemptStatus.IN_PROGRESS.value
            attempt.completed_at = None
            self._refresh_counters(session, attempt)

        self._log_operation("attempt_recovered", attempt_id=attempt_key, backfilled=len(missing))
        return {
            "recovered": True,
            "message": f"Backfilled {len(missing)} missing questions; attempt reopened",
            "analysis": analysis,
        }

    def reset_attempts(self, user_id: Any) -> Dict[str, Any]:
        """Delete every attempt of the user. Development only.

        Raises:
            AuthorizationError: If the reset is not enabled
        """
        if not self._enable_dev_reset:
            raise AuthorizationError("Attempt reset is disabled", reason="dev_reset_disabled")
        self._validate_database_available()
        user_key = _parse_uuid(user_id, "user_id")

        with self._db_manager.get_session() as session:
            attempts = session.query(Attempt).filter(Attempt.user_id == user_key).all()
            for attempt in attempts:
                session.delete(attempt)
            self._logger.warning(f"attempts_reset: user_id={user_key}, deleted={len(attempts)}")
            return {"deleted": len(attempts)}
