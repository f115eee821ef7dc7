"""Candidate Scorer.

Scores bank candidates against the target criteria and picks one with a
weighted random draw among the top K, so the single best-scoring question is
not served to every attempt.

Score = topic/subtopic/Bloom/coding boosts
        - stage-dependent topic-balance penalty
        - cross-attempt freshness penalty
        - similarity penalty (vs. this attempt, and vs. bank neighbours)
"""

import logging
import random
from typing import Any, Iterable, List, Optional, Sequence, Set

from sqlalchemy.exc import SQLAlchemyError

from ..utils.selection import weighted_random_index
from ..utils.similarity import max_cosine_similarity, to_numeric_vector
from ..vector_store import QuestionStore
from .config import DEFAULT_CONFIG, SelectionConfig
from .distributions import Distributions, topic_cap_for_stage, topic_penalty_for_stage
from .types import ScoredCandidate, SelectionCriteria

logger = logging.getLogger(__name__)


class CandidateScorer:
    """Score and pick bank candidates.

    Args:
        config: Selection configuration (thresholds, penalties, boosts, top K)
        rng: Random source for the top-K draw; seed it for reproducible picks
    """

    def __init__(self, config: Optional[SelectionConfig] = None, rng: Optional[random.Random] = None):
        self._config = config or DEFAULT_CONFIG
        self._rng = rng or random.Random()

    def apply_similarity(
        self,
        candidates: Iterable[Any],
        asked_embeddings: Sequence[Sequence[float]],
        store: Optional[QuestionStore] = None,
        seen_recently: Optional[Set[str]] = None,
        neighbor_top_k: int = 1,
    ) -> List[ScoredCandidate]:
        """Wrap bank rows as ScoredCandidates with similarity metrics attached."""
        seen_recently = seen_recently or set()
        wrapped: List[ScoredCandidate] = []
        for row in candidates:
            embedding = to_numeric_vector(row.embedding)
            candidate = ScoredCandidate(
                question_id=row.id,
                topic=row.topic,
                subtopic=row.subtopic,
                difficulty=row.difficulty,
                bloom_level=row.bloom_level,
                has_code=bool(row.code and str(row.code).strip()),
                embedding=embedding,
                seen_recently=str(row.id) in seen_recently,
            )

            if embedding and asked_embeddings:
                candidate.attempt_similarity = max_cosine_similarity(embedding, asked_embeddings)

            if embedding and store is not None:
                try:
                    neighbors = store.bank_neighbors(
                        embedding,
                        topic=row.topic,
                        subtopic=row.subtopic,
                        top_k=neighbor_top_k,
                        exclude_ids=[row.id],
                    )
                    candidate.neighbor_similarity = neighbors[0].score if neighbors else 0.0
                except SQLAlchemyError as e:
                    logger.warning(
                        f"bank_neighbor_similarity_check_failed: candidate_id={row.id}, "
                        f"error={e.__class__.__name__}"
                    )

            wrapped.append(candidate)
        return wrapped

    def similarity_penalty(self, candidate: ScoredCandidate) -> float:
        sim = self._config.similarity
        pen = self._config.penalties

        penalty = 0.0
        if candidate.attempt_similarity >= sim.bank_threshold_high:
            penalty += pen.attempt_similarity_high
        elif candidate.attempt_similarity >= sim.bank_threshold_medium:
            penalty += pen.attempt_similarity_medium

        if candidate.neighbor_similarity >= sim.bank_threshold_high:
            penalty += pen.neighbor_high
        elif candidate.neighbor_similarity >= sim.bank_threshold_medium:
            penalty += pen.neighbor_medium
        return penalty

    def score(
        self,
        candidate: ScoredCandidate,
        criteria: SelectionCriteria,
        distributions: Distributions,
        questions_answered: int,
    ) -> float:
        """Compute and store the candidate's score (and its breakdown)."""
        boosts = self._config.scoring
        breakdown = {}

        if criteria.preferred_topic and criteria.preferred_topic == candidate.topic:
            breakdown["topic"] = boosts.topic_boost
        if criteria.preferred_subtopic and criteria.preferred_subtopic == candidate.subtopic:
            breakdown["subtopic"] = boosts.subtopic_boost
        if criteria.preferred_bloom_level and criteria.preferred_bloom_level == candidate.bloom_level:
            breakdown["bloom"] = boosts.bloom_boost
        if criteria.coding_mode and candidate.has_code:
            breakdown["coding"] = boosts.coding_boost

        balance = self._config.topic_balance
        topic_count = distributions.topic_distribution.get(candidate.topic, 0)
        if topic_count >= topic_cap_for_stage(questions_answered, balance):
            breakdown["topic_balance"] = -topic_penalty_for_stage(questions_answered, balance)

        if candidate.seen_recently:
            breakdown["freshness"] = -self._config.penalties.cross_attempt_freshness

        similarity = self.similarity_penalty(candidate)
        if similarity:
            breakdown["similarity"] = -similarity

        candidate.breakdown = breakdown
        candidate.score = float(sum(breakdown.values()))
        return candidate.score

    def rank(
        self,
        candidates: List[ScoredCandidate],
        criteria: SelectionCriteria,
        distributions: Distributions,
        questions_answered: int,
    ) -> List[ScoredCandidate]:
        """Score every candidate and sort descending (stable for equal scores)."""
        for candidate in candidates:
            self.score(candidate, criteria, distributions, questions_answered)
        return sorted(candidates, key=lambda c: c.score, reverse=True)

    def select_top_k(self, ranked: List[ScoredCandidate]) -> List[ScoredCandidate]:
        """Move a weighted random pick from the top K to the front.

        Weights are scores clamped to at least 1. The rest keep their order so
        callers can fall through to the next candidate.
        """
        if not ranked:
            return []
        k = min(self._config.scoring.top_k, len(ranked))
        top = ranked[:k]
        weights = [max(1.0, c.score) for c in top]
        chosen = weighted_random_index(weights, self._rng)
        return [top[chosen]] + top[:chosen] + top[chosen + 1:] + ranked[k:]

    def pick(
        self,
        candidates: List[ScoredCandidate],
        criteria: SelectionCriteria,
        distributions: Distributions,
        questions_answered: int,
    ) -> List[ScoredCandidate]:
        """Acceptable candidates in pick order; empty means "no acceptable candidate"."""
        ranked = self.rank(candidates, criteria, distributions, questions_answered)
        floor = self._config.scoring.usability_floor
        acceptable = [c for c in ranked if c.score >= floor]
        if not acceptable:
            logger.info(
                f"no_acceptable_candidate: pool_size={len(candidates)}, floor={floor}"
            )
            return []
        return self.select_top_k(acceptable)
