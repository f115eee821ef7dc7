"""Tests for the criteria selector and its deterministic fallback."""

import json
import random
from unittest.mock import patch

import pytest

from skillcheck.core.config import config_loader
from skillcheck.core.evaluate.criteria import CriteriaSelector, parse_criteria_response
from skillcheck.core.evaluate.distributions import Distributions
from skillcheck.core.evaluate.ontology import FALLBACK_TOPICS

TOPICS = ["React", "JavaScript", "CSS"]
OPEN_QUOTAS = {"Easy": 30, "Medium": 20, "Hard": 10}


def _response(**overrides):
    data = {
        "difficulty": "Medium",
        "coding_mode": True,
        "preferred_topic": "React",
        "preferred_subtopic": "Hooks",
        "preferred_bloom_level": "Apply",
        "reasoning": "React coverage is behind its weight.",
    }
    data.update(overrides)
    return json.dumps(data)


class TestCriteriaSelectorLLM:
    """Tests for the LLM path and its failure modes."""

    def test_valid_response_is_used(self, fake_llm):
        fake_llm.complete.return_value = _response()
        selector = CriteriaSelector(fake_llm, rng=random.Random(1))

        criteria = selector.select("attempt-1", 5, Distributions(easy_count=5))

        assert criteria.source == "llm"
        assert criteria.difficulty == "Medium"
        assert criteria.coding_mode is True
        assert criteria.preferred_topic == "React"
        assert criteria.preferred_subtopic == "Hooks"
        assert criteria.preferred_bloom_level == "Apply"

    def test_prompt_carries_attempt_state(self, fake_llm):
        fake_llm.complete.return_value = _response()
        selector = CriteriaSelector(fake_llm)

        selector.select("attempt-1", 12, Distributions(easy_count=8, medium_count=4, coding_count=3))

        system_prompt, user_prompt = fake_llm.complete.call_args.args[:2]
        assert "React" in system_prompt
        assert "Questions answered: 12/60" in user_prompt
        assert "question #13" in user_prompt
        assert fake_llm.complete.call_args.kwargs["json_mode"] is True

    def test_no_llm_uses_fallback(self):
        criteria = CriteriaSelector(None, rng=random.Random(2)).select("a", 0, Distributions())
        assert criteria.source == "fallback"

    def test_llm_error_uses_fallback(self, offline_llm):
        criteria = CriteriaSelector(offline_llm, rng=random.Random(2)).select("a", 0, Distributions())
        assert criteria.source == "fallback"

    def test_timeout_uses_fallback(self, fake_llm):
        selector = CriteriaSelector(fake_llm, rng=random.Random(2))
        with patch("skillcheck.core.evaluate.criteria.call_with_timeout", side_effect=TimeoutError("slow")):
            result = selector._ask_llm("a", 0, Distributions(), 60)
            criteria = selector.select("a", 0, Distributions())

        assert result.reason == "llm_timeout"
        assert criteria.source == "fallback"

    def test_malformed_response_uses_fallback(self, fake_llm):
        fake_llm.complete.return_value = "I think Medium React would be great"
        criteria = CriteriaSelector(fake_llm, rng=random.Random(2)).select("a", 0, Distributions())
        assert criteria.source == "fallback"


class TestParseCriteriaResponse:
    """Tests for strict validation of selector responses."""

    def test_valid(self):
        result = parse_criteria_response(_response(difficulty="hard"), TOPICS, OPEN_QUOTAS)
        assert result.ok
        assert result.value.difficulty == "Hard"

    def test_null_subtopic_allowed(self):
        result = parse_criteria_response(_response(preferred_subtopic=None), TOPICS, OPEN_QUOTAS)
        assert result.ok
        assert result.value.preferred_subtopic is None

    @pytest.mark.parametrize("overrides, reason", [
        ({"difficulty": "Expert"}, "invalid_difficulty"),
        ({"coding_mode": "true"}, "invalid_coding_mode"),
        ({"coding_mode": 1}, "invalid_coding_mode"),
        ({"preferred_topic": "Rust"}, "unknown_topic"),
        ({"preferred_subtopic": "Grid"}, "unknown_subtopic"),
        ({"preferred_bloom_level": "Memorize"}, "invalid_bloom_level"),
        ({"reasoning": 3}, "invalid_reasoning"),
    ])
    def test_invalid_fields(self, overrides, reason):
        result = parse_criteria_response(_response(**overrides), TOPICS, OPEN_QUOTAS)
        assert not result.ok
        assert result.reason == reason

    def test_missing_fields(self):
        result = parse_criteria_response(json.dumps({"difficulty": "Easy"}), TOPICS, OPEN_QUOTAS)
        assert not result.ok
        assert result.reason.startswith("missing_fields:")
        assert "coding_mode" in result.reason

    def test_malformed_json(self):
        result = parse_criteria_response("not json at all", TOPICS, OPEN_QUOTAS)
        assert result.reason == "malformed_json"

    def test_exhausted_difficulty_rejected(self):
        quotas = {"Easy": 0, "Medium": 3, "Hard": 1}
        result = parse_criteria_response(_response(difficulty="Easy"), TOPICS, quotas)
        assert result.reason == "difficulty_quota_exhausted"

    def test_any_difficulty_once_every_quota_is_spent(self):
        quotas = {"Easy": 0, "Medium": 0, "Hard": 0}
        assert parse_criteria_response(_response(difficulty="Easy"), TOPICS, quotas).ok


class TestFallbackCriteria:
    """Tests for the coverage-aware fallback."""

    def test_exhausted_tiers_are_never_chosen(self):
        selector = CriteriaSelector(None, rng=random.Random(5))
        dist = Distributions(easy_count=30, medium_count=20)
        picks = {selector.fallback_criteria(50, dist).difficulty for _ in range(30)}
        assert picks == {"Hard"}

    def test_topic_and_subtopic_come_from_ontology(self, ontology):
        selector = CriteriaSelector(None, rng=random.Random(5))
        for _ in range(20):
            criteria = selector.fallback_criteria(0, Distributions())
            assert criteria.preferred_topic in ontology
            assert criteria.preferred_subtopic in ontology[criteria.preferred_topic]
            assert criteria.reasoning

    def test_coding_forced_in_second_half(self):
        selector = CriteriaSelector(None, rng=random.Random(5))
        assert selector.fallback_criteria(30, Distributions(coding_count=4)).coding_mode is True
        assert selector.fallback_criteria(10, Distributions(coding_count=4)).coding_mode is False
        assert selector.fallback_criteria(40, Distributions(coding_count=21)).coding_mode is False

    def test_seeded_fallback_is_reproducible(self):
        dist = Distributions(easy_count=4, topic_distribution={"React": 4})
        first = CriteriaSelector(None, rng=random.Random(9)).fallback_criteria(4, dist)
        second = CriteriaSelector(None, rng=random.Random(9)).fallback_criteria(4, dist)
        assert first == second

    def test_ontology_unavailable_uses_builtin_topics(self, monkeypatch):
        def unreadable():
            raise OSError("ontology.yaml missing")

        monkeypatch.setattr(config_loader, "get_topic_map", unreadable)
        criteria = CriteriaSelector(None, rng=random.Random(5)).fallback_criteria(0, Distributions())

        assert criteria.preferred_topic in FALLBACK_TOPICS
        assert criteria.preferred_subtopic is None
