"""Results service: the post-completion report for an attempt."""

from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy.orm import joinedload

from ...api.core.exceptions import StateConflictError
from ..db.models import AttemptQuestion, McqItem
from ..evaluate.config import SelectionConfig
from ..evaluate.results import ResultsAggregator
from ..evaluate.types import AttemptStatus
from .base import BaseService

if TYPE_CHECKING:
    from ..db import DatabaseManager


class ResultsService(BaseService):
    """Service for retrieving results of completed attempts.

    Results are the only place correctness, explanations and citations are
    exposed, so the attempt must be completed and owned by the caller.
    """

    def __init__(
        self,
        db_manager: "DatabaseManager",
        config: Optional[SelectionConfig] = None,
        aggregator: Optional[ResultsAggregator] = None
    ):
        super().__init__(db_manager, config)
        self._aggregator = aggregator or ResultsAggregator()

    def get_results(self, attempt_id: Any, user_id: Any) -> Dict[str, Any]:
        """Full breakdown for a completed attempt.

        Raises:
            NotFoundError: Attempt missing or owned by someone else
            StateConflictError: If the attempt is not completed
        """
        self._validate_database_available()

        with self._db_manager.get_session() as session:
            attempt = self._get_owned_attempt(session, attempt_id, user_id)
            if attempt.status != AttemptStatus.COMPLETED.value:
                raise StateConflictError(
                    "Results are available once the attempt is completed",
                    details={
                        "questions_answered": attempt.questions_answered,
                        "total_questions": attempt.total_questions,
                    },
                    reason="attempt_not_completed",
                )

            rows = (
                session.query(AttemptQuestion)
                .options(joinedload(AttemptQuestion.mcq).joinedload(McqItem.explanations))
                .filter(AttemptQuestion.attempt_id == attempt.id)
                .order_by(AttemptQuestion.question_order.asc())
                .all()
            )
            results = self._aggregator.build(attempt, rows)

        results["attempt_id"] = str(attempt.id)
        self._log_operation(
            "results_built",
            attempt_id=attempt.id,
            score_percentage=results["summary"]["score_percentage"],
            weak_areas=len(results["weak_areas"]),
        )
        return results
