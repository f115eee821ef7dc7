"""Next-question selection service.

Decides which bank question occupies the next slot of an attempt:

    guard -> pending slot -> distributions -> criteria -> bank pool
          -> score & pick -> assign
          -> (no acceptable candidate) generate -> assign
          -> (generation failed) first unused bank question -> assign

Every decision is recomputed from persisted rows. Slot ownership is settled by
the AssignmentTransaction; this service never touches attempt counters.
"""

import random
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import and_
from sqlalchemy.orm import joinedload

from ...api.core.exceptions import AssignmentError
from ..db.models import Attempt, AttemptQuestion, McqItem
from ..evaluate import (
    AskedQuestion,
    AssignmentTransaction,
    CandidateScorer,
    CriteriaSelector,
    QuestionGenerator,
    QuestionJudge,
    SelectionConfig,
    SelectionCriteria,
    SelectionMethod,
    calculate_distributions,
    identify_overrepresented_topics,
)
from ..evaluate.types import AttemptStatus
from ..utils.similarity import to_numeric_vector
from ..vector_store import QuestionStore
from .base import BaseService

if TYPE_CHECKING:
    from ..db import DatabaseManager
    from ..interfaces import EmbeddingProvider, LLMProvider


def serialize_next_question(mcq: McqItem, question_order: int) -> Dict[str, Any]:
    """Client view of an assigned question. Never carries the answer."""
    return {
        "id": str(mcq.id),
        "question_order": question_order,
        "question": mcq.question,
        "options": list(mcq.options or []),
        "code": mcq.code,
        "metadata": {
            "topic": mcq.topic,
            "subtopic": mcq.subtopic,
            "difficulty": mcq.difficulty,
            "bloom_level": mcq.bloom_level,
        },
    }


def in_sequence(question_order: int, total_questions: int) -> bool:
    """True when the order is one of the attempt's slots 1..total."""
    return 1 <= question_order <= total_questions


def smallest_missing_order(assigned_orders: Set[int], total_questions: int) -> Optional[int]:
    """First slot in 1..total that has no AttemptQuestion yet."""
    for order in range(1, total_questions + 1):
        if order not in assigned_orders:
            return order
    return None


class SelectionService(BaseService):
    """Service for picking and reserving the next question of an attempt.

    Collaborators are built from the providers unless given explicitly, so
    tests can swap in seeded or mocked components. `selector_llm` and
    `judge_llm` let criteria selection and review run at their own
    temperatures; both default to `llm`.
    """

    def __init__(
        self,
        db_manager: "DatabaseManager",
        llm: Optional["LLMProvider"] = None,
        embedder: Optional["EmbeddingProvider"] = None,
        config: Optional[SelectionConfig] = None,
        rng: Optional[random.Random] = None,
        selector_llm: Optional["LLMProvider"] = None,
        judge_llm: Optional["LLMProvider"] = None,
        criteria_selector: Optional[CriteriaSelector] = None,
        scorer: Optional[CandidateScorer] = None,
        generator: Optional[QuestionGenerator] = None,
        assigner: Optional[AssignmentTransaction] = None,
    ):
        super().__init__(db_manager, config)
        rng = rng or random.Random()
        selector_llm = selector_llm or llm
        judge_llm = judge_llm or llm
        self._criteria = criteria_selector or CriteriaSelector(selector_llm, self.config, rng)
        self._scorer = scorer or CandidateScorer(self.config, rng)
        self._generator = generator or QuestionGenerator(
            db_manager,
            llm,
            embedder,
            self.config,
            rng,
            judge=QuestionJudge(judge_llm, self.config) if judge_llm is not None else None,
        )
        self._assigner = assigner or AssignmentTransaction(db_manager, self.config)

    @property
    def assigner(self) -> AssignmentTransaction:
        return self._assigner

    def next_question(self, attempt_id: Any) -> Optional[Dict[str, Any]]:
        """Return the question the client should answer next.

        Returns the pending (assigned, unanswered) question when there is one,
        otherwise selects and assigns a new one. Returns None when the attempt
        is completed or every slot has been answered.

        A concurrent request can take and answer the slot while this one is
        still selecting. That slot is never served; selection reruns from the
        persisted rows, a bounded number of times.

        Raises:
            AssignmentError: If no question could be reserved for the slot
        """
        self._validate_database_available()

        passes = max(1, self.config.assignment.max_retries)
        for _ in range(passes):
            done, payload = self._select_once(attempt_id)
            if done:
                return payload

        error = AssignmentError(
            "Slots kept being answered while selecting, please retry",
            details={"attempt_id": str(attempt_id), "passes": passes},
            reason="slot_contention",
        )
        self._log_error("next_question", error, attempt_id=attempt_id, passes=passes)
        raise error

    def _select_once(self, attempt_id: Any) -> Tuple[bool, Optional[Dict[str, Any]]]:
        """One selection pass: (True, payload) when settled, (False, None) when the slot went stale."""
        with self._db_manager.get_session() as session:
            attempt = session.query(Attempt).filter(Attempt.id == attempt_id).first()
            if attempt is None or attempt.status == AttemptStatus.COMPLETED.value:
                return True, None

            total = attempt.total_questions
            user_id = attempt.user_id
            all_rows = (
                session.query(AttemptQuestion)
                .options(joinedload(AttemptQuestion.mcq))
                .filter(AttemptQuestion.attempt_id == attempt_id)
                .order_by(AttemptQuestion.question_order.asc())
                .all()
            )
            # Rows outside 1..total are never progress and never served
            rows = [r for r in all_rows if in_sequence(r.question_order, total)]
            if len(rows) < len(all_rows):
                self._logger.warning(
                    f"out_of_range_orders: attempt_id={attempt_id}, total={total}, "
                    f"orders={sorted(r.question_order for r in all_rows if r not in rows)}"
                )

            answered = sum(1 for r in rows if r.is_answered)
            if answered >= total:
                return True, None

            pending = next((r for r in rows if not r.is_answered), None)
            if pending is not None:
                self._log_operation(
                    "question_selected",
                    attempt_id=attempt_id,
                    order=pending.question_order,
                    question_id=pending.question_id,
                    method=SelectionMethod.PENDING.value,
                )
                return True, serialize_next_question(pending.mcq, pending.question_order)

            next_order = smallest_missing_order({r.question_order for r in rows}, total)
            if next_order is None:
                return True, None

            asked_mcqs = [r.mcq for r in all_rows]
            distributions = calculate_distributions(asked_mcqs)
            asked_ids = [m.id for m in asked_mcqs]
            asked = [
                AskedQuestion(m.question, m.content_key, to_numeric_vector(m.embedding))
                for m in asked_mcqs
            ]
            seen_recently = self._seen_recently(session, user_id, attempt_id)

        self._log_operation(
            "selection_input",
            attempt_id=attempt_id,
            order=next_order,
            answered=answered,
            easy=distributions.easy_count,
            medium=distributions.medium_count,
            hard=distributions.hard_count,
            coding=distributions.coding_count,
        )

        criteria = self._criteria.select(str(attempt_id), answered, distributions, total)
        overrepresented = identify_overrepresented_topics(
            distributions.topic_distribution, answered, self.config.topic_balance
        )

        method = SelectionMethod.BANK
        question_id = self._pick_from_bank(
            attempt_id, criteria, distributions, answered, asked_ids, asked, seen_recently, overrepresented
        )

        if question_id is None:
            method = SelectionMethod.GENERATED
            question_id = self._generate(attempt_id, user_id, criteria, asked, distributions.topic_distribution)

        if question_id is None:
            method = SelectionMethod.FALLBACK
            outcome = self._assigner.assign_fallback(attempt_id, next_order)
        else:
            outcome = self._assigner.assign(attempt_id, question_id, next_order)

        if not outcome.created and outcome.answered:
            self._log_operation(
                "stale_slot",
                attempt_id=attempt_id,
                order=outcome.question_order,
                question_id=outcome.question_id,
            )
            return False, None

        with self._db_manager.get_session() as session:
            mcq = session.query(McqItem).filter(McqItem.id == outcome.question_id).first()
            payload = serialize_next_question(mcq, outcome.question_order)

        self._log_operation(
            "question_selected",
            attempt_id=attempt_id,
            order=outcome.question_order,
            question_id=outcome.question_id,
            method=method.value if outcome.created else "concurrent",
            difficulty=mcq.difficulty,
            topic=mcq.topic,
            criteria_source=criteria.source,
        )
        return True, payload

    def _seen_recently(self, session, user_id: Any, attempt_id: Any) -> Set[str]:
        """Question ids used in the user's last completed attempts."""
        look_back = self.config.freshness.look_back_count
        if look_back <= 0:
            return set()
        recent = (
            session.query(Attempt.id)
            .filter(
                Attempt.user_id == user_id,
                Attempt.status == AttemptStatus.COMPLETED.value,
                Attempt.id != attempt_id,
            )
            .order_by(Attempt.completed_at.desc(), Attempt.created_at.desc())
            .limit(look_back)
            .all()
        )
        recent_ids = [r[0] for r in recent]
        if not recent_ids:
            return set()
        rows = (
            session.query(AttemptQuestion.question_id)
            .filter(AttemptQuestion.attempt_id.in_(recent_ids))
            .all()
        )
        return {str(r[0]) for r in rows}

    def _pick_from_bank(
        self,
        attempt_id: Any,
        criteria: SelectionCriteria,
        distributions,
        answered: int,
        asked_ids: List[Any],
        asked: List[AskedQuestion],
        seen_recently: Set[str],
        overrepresented: List[str],
    ) -> Optional[Any]:
        with self._db_manager.get_session() as session:
            query = session.query(McqItem).filter(McqItem.difficulty == criteria.difficulty)
            if asked_ids:
                query = query.filter(McqItem.id.notin_(asked_ids))
            if criteria.coding_mode:
                query = query.filter(and_(McqItem.code.isnot(None), McqItem.code != ""))
            if overrepresented:
                query = query.filter(McqItem.topic.notin_(overrepresented))
            pool = (
                query.order_by(McqItem.created_at.desc(), McqItem.id.asc())
                .limit(self.config.bank_query.limit)
                .all()
            )

            self._log_operation(
                "candidate_pool_primary",
                attempt_id=attempt_id,
                difficulty=criteria.difficulty,
                coding_mode=criteria.coding_mode,
                excluded_topics=overrepresented,
                pool_size=len(pool),
            )
            if not pool:
                return None

            candidates = self._scorer.apply_similarity(
                pool,
                [a.embedding for a in asked if a.embedding],
                store=QuestionStore(session),
                seen_recently=seen_recently,
            )

        picks = self._scorer.pick(candidates, criteria, distributions, answered)
        if not picks:
            return None
        best = picks[0]
        self._log_operation(
            "bank_candidate_picked",
            attempt_id=attempt_id,
            question_id=best.question_id,
            score=best.score,
            breakdown=best.breakdown,
        )
        return best.question_id

    def _generate(
        self,
        attempt_id: Any,
        user_id: Any,
        criteria: SelectionCriteria,
        asked: List[AskedQuestion],
        topic_distribution: Dict[str, int],
    ) -> Optional[Any]:
        try:
            outcome = self._generator.generate(attempt_id, user_id, criteria, asked, topic_distribution)
        except Exception as e:
            self._log_error("question_generation", e, attempt_id=attempt_id)
            return None
        return outcome.question_id if outcome else None
