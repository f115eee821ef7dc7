"""Criteria Selector.

Decides the target profile (difficulty, coding mode, topic, subtopic, Bloom
level) of the next question. The LLM proposes; anything it returns is
validated strictly, and any failure falls back to a deterministic weighted
choice driven by the remaining quotas and coverage so far.
"""

import logging
import random
from typing import Dict, List, Optional

from ..interfaces import LLMProvider
from ..utils.mcq import parse_json_object
from ..utils.selection import (
    calculate_coverage_weights,
    inverse_coverage_weights,
    weighted_random_index,
)
from ..utils.timeout import call_with_timeout
from .config import DEFAULT_CONFIG, POLICY, SelectionConfig
from .distributions import Distributions, remaining_coding_need, remaining_difficulty_quota
from .ontology import get_subtopics, get_topic_list, get_topic_weights, load_topic_map
from .prompts import (
    CRITERIA_SELECTOR_SYSTEM_PROMPT,
    CRITERIA_SELECTOR_USER_PROMPT,
    format_histogram,
    format_topic_breakdown,
)
from .types import BloomLevel, Difficulty, LLMResult, SelectionCriteria

logger = logging.getLogger(__name__)

REQUIRED_KEYS = (
    "difficulty",
    "coding_mode",
    "preferred_topic",
    "preferred_subtopic",
    "preferred_bloom_level",
    "reasoning",
)


class CriteriaSelector:
    """Pick target criteria for the next slot of an attempt.

    Args:
        llm: Completion provider, or None to always use the fallback
        config: Selection configuration (timeouts)
        rng: Random source for the fallback; pass a seeded Random in tests
    """

    def __init__(
        self,
        llm: Optional[LLMProvider] = None,
        config: Optional[SelectionConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self._llm = llm
        self._config = config or DEFAULT_CONFIG
        self._rng = rng or random.Random()

    def select(
        self,
        attempt_id: str,
        questions_answered: int,
        distributions: Distributions,
        total_questions: int = POLICY.total_questions,
    ) -> SelectionCriteria:
        """Return criteria for slot ``questions_answered + 1``. Never raises."""
        result = self._ask_llm(attempt_id, questions_answered, distributions, total_questions)
        if result.ok:
            criteria = result.value
            logger.info(
                f"llm_selector_decision: attempt_id={attempt_id}, answered={questions_answered}, "
                f"difficulty={criteria.difficulty}, coding_mode={criteria.coding_mode}, "
                f"topic={criteria.preferred_topic}, subtopic={criteria.preferred_subtopic}, "
                f"bloom={criteria.preferred_bloom_level}"
            )
            return criteria

        logger.warning(
            f"llm_selector_fallback: attempt_id={attempt_id}, answered={questions_answered}, "
            f"reason={result.reason}"
        )
        return self.fallback_criteria(questions_answered, distributions, total_questions)

    def _ask_llm(
        self,
        attempt_id: str,
        questions_answered: int,
        distributions: Distributions,
        total_questions: int,
    ) -> LLMResult[SelectionCriteria]:
        if self._llm is None:
            return LLMResult.failure("llm_unavailable")

        quotas = remaining_difficulty_quota(distributions, total_questions)
        try:
            system_prompt, user_prompt = self._build_prompts(questions_answered, distributions, total_questions)
            raw = call_with_timeout(
                self._llm.complete,
                self._config.timeouts.selector_seconds,
                system_prompt,
                user_prompt,
                json_mode=True,
            )
        except TimeoutError:
            return LLMResult.failure("llm_timeout")
        except Exception as e:
            logger.warning(f"llm_selector_error: attempt_id={attempt_id}, error={e.__class__.__name__}: {e}")
            return LLMResult.failure("llm_error")

        return parse_criteria_response(raw, get_topic_list(), quotas)

    def _build_prompts(self, questions_answered: int, dist: Distributions, total_questions: int):
        targets = POLICY.difficulty_targets(total_questions)
        quotas = remaining_difficulty_quota(dist, total_questions)
        coding_target = POLICY.coding_target(total_questions)

        topic_map = load_topic_map() or {t: [] for t in get_topic_list()}
        system_prompt = CRITERIA_SELECTOR_SYSTEM_PROMPT.format(
            easy_target=targets["Easy"],
            medium_target=targets["Medium"],
            hard_target=targets["Hard"],
            total_questions=total_questions,
            coding_target=coding_target,
            topic_breakdown=format_topic_breakdown(topic_map, get_topic_weights()),
            bloom_levels=", ".join(BloomLevel.values()),
        )
        user_prompt = CRITERIA_SELECTOR_USER_PROMPT.format(
            questions_answered=questions_answered,
            total_questions=total_questions,
            remaining=max(0, total_questions - questions_answered),
            easy_count=dist.easy_count,
            medium_count=dist.medium_count,
            hard_count=dist.hard_count,
            easy_target=targets["Easy"],
            medium_target=targets["Medium"],
            hard_target=targets["Hard"],
            easy_remaining=quotas["Easy"],
            medium_remaining=quotas["Medium"],
            hard_remaining=quotas["Hard"],
            coding_count=dist.coding_count,
            coding_target=coding_target,
            coding_needed=remaining_coding_need(dist, total_questions),
            topic_list=format_histogram(dist.topic_distribution),
            subtopic_list=format_histogram(dist.subtopic_distribution),
            bloom_list=format_histogram(dist.bloom_distribution),
            next_order=questions_answered + 1,
        )
        return system_prompt, user_prompt

    def fallback_criteria(
        self,
        questions_answered: int,
        distributions: Distributions,
        total_questions: int = POLICY.total_questions,
    ) -> SelectionCriteria:
        """Deterministic (given the rng) coverage-aware criteria."""
        rng = self._rng
        quotas = remaining_difficulty_quota(distributions, total_questions)

        tiers = Difficulty.values()
        difficulty = tiers[weighted_random_index([quotas[t] for t in tiers], rng)]

        coding_needed = remaining_coding_need(distributions, total_questions)
        coding_mode = coding_needed > 0 and questions_answered >= total_questions // 2

        topics = get_topic_list()
        topic_weights = calculate_coverage_weights(distributions.topic_distribution, topics, min_weight=1.0)
        topic = topics[weighted_random_index([topic_weights[t] for t in topics], rng)]

        subtopic: Optional[str] = None
        subtopics = get_subtopics(topic)
        if subtopics:
            sub_weights = inverse_coverage_weights(distributions.subtopic_distribution, subtopics)
            subtopic = subtopics[weighted_random_index(sub_weights, rng)]

        blooms = BloomLevel.values()
        bloom_weights = inverse_coverage_weights(distributions.bloom_distribution, blooms)
        bloom = blooms[weighted_random_index(bloom_weights, rng)]

        return SelectionCriteria(
            difficulty=difficulty,
            coding_mode=coding_mode,
            preferred_topic=topic,
            preferred_subtopic=subtopic,
            preferred_bloom_level=bloom,
            reasoning="Coverage-aware fallback after LLM failure",
            source="fallback",
        )


def parse_criteria_response(
    raw: str,
    known_topics: List[str],
    quotas: Dict[str, int],
) -> LLMResult[SelectionCriteria]:
    """Validate a selector response. Every field must be present and legal."""
    try:
        data = parse_json_object(raw)
    except ValueError:
        return LLMResult.failure("malformed_json")

    missing = [k for k in REQUIRED_KEYS if k not in data]
    if missing:
        return LLMResult.failure(f"missing_fields:{','.join(missing)}")

    difficulty = Difficulty.parse(data["difficulty"])
    if difficulty is None:
        return LLMResult.failure("invalid_difficulty")
    if quotas.get(difficulty.value, 0) <= 0 and any(v > 0 for v in quotas.values()):
        return LLMResult.failure("difficulty_quota_exhausted")

    if not isinstance(data["coding_mode"], bool):
        return LLMResult.failure("invalid_coding_mode")

    topic = data["preferred_topic"]
    if not isinstance(topic, str) or topic.strip() not in known_topics:
        return LLMResult.failure("unknown_topic")
    topic = topic.strip()

    subtopic = data["preferred_subtopic"]
    if subtopic is not None and not isinstance(subtopic, str):
        return LLMResult.failure("invalid_subtopic")
    allowed_subtopics = get_subtopics(topic)
    if subtopic and allowed_subtopics and subtopic.strip() not in allowed_subtopics:
        return LLMResult.failure("unknown_subtopic")

    bloom = BloomLevel.parse(data["preferred_bloom_level"])
    if bloom is None:
        return LLMResult.failure("invalid_bloom_level")

    reasoning = data["reasoning"]
    if not isinstance(reasoning, str):
        return LLMResult.failure("invalid_reasoning")

    return LLMResult.success(SelectionCriteria(
        difficulty=difficulty.value,
        coding_mode=data["coding_mode"],
        preferred_topic=topic,
        preferred_subtopic=(subtopic or "").strip() or None,
        preferred_bloom_level=bloom.value,
        reasoning=reasoning.strip()[:500],
        source="llm",
    ))
