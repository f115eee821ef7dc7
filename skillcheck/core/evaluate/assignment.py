"""Assignment Transaction.

Reserves a ``question_order`` slot for an attempt by inserting the
AttemptQuestion row. The (attempt_id, question_order) unique constraint is
the only coordination between concurrent requests: whoever inserts first owns
the slot and everyone else reads the winner's row back.

Transient store errors are retried with exponential backoff up to a fixed
bound, then surface as AssignmentError. A slot is never skipped silently.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from ...api.core.exceptions import AssignmentError
from ..db import DatabaseManager
from ..db.models import AttemptQuestion, McqItem
from .config import DEFAULT_CONFIG, SelectionConfig

logger = logging.getLogger(__name__)


@dataclass
class AssignmentOutcome:
    question_id: Any
    question_order: int
    created: bool  # False when another request already held the slot
    answered: bool = False  # held slot was already answered


def first_unused_bank_question(session: Session, attempt_id: Any) -> Optional[McqItem]:
    """Oldest bank question not yet used in this attempt.

    Deliberately criteria-blind: used only when the full pipeline has failed
    and by recovery backfill.
    """
    used = session.query(AttemptQuestion.question_id).filter(AttemptQuestion.attempt_id == attempt_id)
    return (
        session.query(McqItem)
        .filter(McqItem.id.notin_(used))
        .order_by(McqItem.created_at.asc(), McqItem.id.asc())
        .first()
    )


class AssignmentTransaction:
    """Insert one AttemptQuestion per call, with bounded conflict handling.

    Args:
        db_manager: Database manager providing sessions
        config: Selection configuration (retry count and backoff base)
        sleep: Sleep function, replaceable in tests
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        config: Optional[SelectionConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._db = db_manager
        self._config = config or DEFAULT_CONFIG
        self._sleep = sleep

    def _existing(self, attempt_id: Any, question_order: int) -> Optional[AttemptQuestion]:
        with self._db.get_session() as session:
            return (
                session.query(AttemptQuestion)
                .filter(
                    AttemptQuestion.attempt_id == attempt_id,
                    AttemptQuestion.question_order == question_order,
                )
                .first()
            )

    def _insert(self, attempt_id: Any, question_id: Any, question_order: int) -> None:
        with self._db.get_session() as session:
            session.add(AttemptQuestion(
                attempt_id=attempt_id,
                question_id=question_id,
                question_order=question_order,
            ))

    def assign(self, attempt_id: Any, question_id: Any, question_order: int) -> AssignmentOutcome:
        """Reserve ``question_order`` for ``question_id``.

        Returns the canonical row's question when the slot is already taken;
        `answered` on the outcome tells the caller the slot is no longer the
        one to serve.

        Raises:
            AssignmentError: If the insert keeps failing after all retries
        """
        max_retries = self._config.assignment.max_retries
        base_ms = self._config.assignment.backoff_base_ms
        last_error: Optional[Exception] = None

        for retry in range(max_retries):
            existing = self._existing(attempt_id, question_order)
            if existing is not None:
                logger.info(
                    f"question_assignment_slot_taken: attempt_id={attempt_id}, order={question_order}, "
                    f"question_id={existing.question_id}"
                )
                return AssignmentOutcome(
                    existing.question_id, question_order, created=False, answered=existing.is_answered
                )

            try:
                self._insert(attempt_id, question_id, question_order)
                return AssignmentOutcome(question_id, question_order, created=True)
            except IntegrityError as e:
                last_error = e
                # Lost a race for the slot; the winner's row is the answer
                existing = self._existing(attempt_id, question_order)
                if existing is not None:
                    logger.info(
                        f"question_assignment_conflict: attempt_id={attempt_id}, order={question_order}, "
                        f"winner_question_id={existing.question_id}"
                    )
                    return AssignmentOutcome(
                        existing.question_id, question_order, created=False, answered=existing.is_answered
                    )
            except DBAPIError as e:
                last_error = e

            if retry < max_retries - 1:
                delay_ms = (2 ** retry) * base_ms
                logger.warning(
                    f"question_assignment_retry: attempt_id={attempt_id}, question_id={question_id}, "
                    f"order={question_order}, retry={retry + 1}, max_retries={max_retries}, "
                    f"delay_ms={delay_ms}, error={last_error.__class__.__name__}"
                )
                self._sleep(delay_ms / 1000.0)

        logger.error(
            f"question_assignment_failed: attempt_id={attempt_id}, order={question_order}, "
            f"error={last_error.__class__.__name__ if last_error else None}"
        )
        raise AssignmentError(
            details={"attempt_id": str(attempt_id), "question_order": question_order}
        )

    def assign_fallback(self, attempt_id: Any, question_order: int) -> AssignmentOutcome:
        """Assign the first bank question not already in the attempt.

        Raises:
            AssignmentError: If the bank has nothing left, or the insert fails
        """
        with self._db.get_session() as session:
            fallback = first_unused_bank_question(session, attempt_id)
            fallback_id = fallback.id if fallback else None

        if fallback_id is None:
            logger.error(f"no_fallback_available: attempt_id={attempt_id}, order={question_order}")
            raise AssignmentError(
                "No question available for this slot",
                details={"attempt_id": str(attempt_id), "question_order": question_order},
                reason="no_fallback_available",
            )
        return self.assign(attempt_id, fallback_id, question_order)
