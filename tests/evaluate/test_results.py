"""Tests for the results aggregator."""

from types import SimpleNamespace

import pytest

from skillcheck.core.evaluate.results import ResultsAggregator, score_tier


def _row(order, correct, topic="React", subtopic="Hooks", difficulty="Easy", bloom="Apply", explanation="Because."):
    mcq = SimpleNamespace(
        topic=topic,
        subtopic=subtopic,
        difficulty=difficulty,
        bloom_level=bloom,
        question=f"Question {order}",
        options=["a", "b", "c", "d"],
        code=None,
        correct_index=0,
        citations=[{"title": f"{topic} docs", "url": f"https://docs.example.com/{topic.lower()}"}],
        explanations=[SimpleNamespace(explanation=explanation)] if explanation else [],
    )
    return SimpleNamespace(
        question_order=order,
        user_answer_index=0 if correct else 2,
        is_correct=correct,
        time_spent_seconds=20,
        mcq=mcq,
    )


def _attempt(total, time_spent=300):
    return SimpleNamespace(total_questions=total, attempt_metadata={"time_spent_seconds": time_spent})


class TestScoreTier:
    """Tests for tier boundaries."""

    @pytest.mark.parametrize("score, tier", [
        (100, "expert"),
        (85, "expert"),
        (84, "proficient"),
        (70, "proficient"),
        (69, "developing"),
        (50, "developing"),
        (49, "getting_started"),
        (0, "getting_started"),
    ])
    def test_boundaries(self, score, tier):
        assert score_tier(score) == tier


class TestResultsAggregator:
    """Tests for ResultsAggregator.build."""

    def test_summary(self):
        rows = [_row(i, correct=i <= 7) for i in range(1, 11)]

        results = ResultsAggregator().build(_attempt(10), rows)

        assert results["summary"] == {
            "total_questions": 10,
            "correct_count": 7,
            "score_percentage": 70,
            "time_spent_seconds": 300,
            "tier": "proficient",
        }

    def test_questions_sorted_and_exposed(self):
        rows = [_row(3, True), _row(1, False, explanation=None), _row(2, True)]

        questions = ResultsAggregator().build(_attempt(3), rows)["questions"]

        assert [q["question_order"] for q in questions] == [1, 2, 3]
        first = questions[0]
        assert first["correct_index"] == 0
        assert first["user_answer_index"] == 2
        assert first["is_correct"] is False
        assert first["explanation"] == ""
        assert first["citations"][0]["url"] == "https://docs.example.com/react"
        assert first["metadata"] == {
            "topic": "React", "subtopic": "Hooks", "difficulty": "Easy", "bloom_level": "Apply",
        }

    def test_unanswered_counts_as_incorrect(self):
        row = _row(1, None)
        results = ResultsAggregator().build(_attempt(1), [row])
        assert results["questions"][0]["is_correct"] is False
        assert results["summary"]["correct_count"] == 0

    def test_breakdowns_group_case_insensitively(self):
        rows = [
            _row(1, True, topic="React"),
            _row(2, False, topic="react"),
            _row(3, True, topic="CSS", subtopic="Grid", difficulty="Hard", bloom="Remember"),
        ]

        results = ResultsAggregator().build(_attempt(3), rows)

        assert results["topic_breakdown"] == [
            {"category": "react", "correct": 1, "total": 2, "accuracy": 0.5},
            {"category": "css", "correct": 1, "total": 1, "accuracy": 1.0},
        ]
        assert {b["category"] for b in results["difficulty_breakdown"]} == {"easy", "hard"}
        assert {b["category"] for b in results["bloom_breakdown"]} == {"apply", "remember"}

    def test_weak_areas(self):
        rows = (
            [_row(i, False, subtopic="Hooks") for i in range(1, 5)]
            + [_row(i, i == 5, subtopic="State") for i in range(5, 8)]
            + [_row(i, False, subtopic="Rendering") for i in range(8, 10)]
            + [_row(i, True, topic="CSS", subtopic="Grid") for i in range(10, 14)]
        )

        weak = ResultsAggregator().build(_attempt(13), rows)["weak_areas"]

        assert [w["subtopic"] for w in weak] == ["hooks", "state"]
        hooks, state = weak
        assert hooks["priority"] == "critical"
        assert hooks["accuracy"] == 0.0
        assert hooks["topic"] == "React"
        assert hooks["citation"] == "https://docs.example.com/react"
        assert hooks["recommendation"] == (
            "Review React documentation focusing on hooks. You scored 0% on 4 questions in this area."
        )
        assert state["priority"] == "high"
        assert state["accuracy"] == pytest.approx(1 / 3)

    def test_weak_areas_capped(self):
        rows = []
        order = 0
        for n in range(7):
            for _ in range(3):
                order += 1
                rows.append(_row(order, False, subtopic=f"Area {n}"))

        weak = ResultsAggregator().build(_attempt(order), rows)["weak_areas"]

        assert len(weak) == 5
