"""Results Aggregator.

Builds the post-attempt report: score summary, per-category accuracy, weak
areas and the full question review. This is the only place correctness,
explanations and citations are exposed, so callers must check the attempt is
completed before calling it.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

WEAK_AREA_ACCURACY = 0.5
WEAK_AREA_MIN_QUESTIONS = 3
WEAK_AREA_LIMIT = 5
CRITICAL_ACCURACY = 0.25

# (minimum score percentage, tier), highest first
TIERS = (
    (85, "expert"),
    (70, "proficient"),
    (50, "developing"),
    (0, "getting_started"),
)

RECOMMENDATION_TEMPLATE = (
    "Review {topic} documentation focusing on {subtopic}. "
    "You scored {pct}% on {total} questions in this area."
)


@dataclass
class ReviewItem:
    """One answered slot joined with its bank question."""
    question_order: int
    user_answer_index: Optional[int]
    is_correct: Optional[bool]
    time_spent_seconds: Optional[int]
    topic: str
    subtopic: Optional[str]
    difficulty: str
    bloom_level: str
    question: str
    options: List[str]
    code: Optional[str]
    correct_index: int
    citations: List[Dict[str, Any]]
    explanation: Optional[str]

    @classmethod
    def from_row(cls, row: Any) -> "ReviewItem":
        """Build from an AttemptQuestion with its ``mcq`` relationship loaded."""
        mcq = row.mcq
        explanation = mcq.explanations[0].explanation if mcq.explanations else None
        return cls(
            question_order=row.question_order,
            user_answer_index=row.user_answer_index,
            is_correct=row.is_correct,
            time_spent_seconds=row.time_spent_seconds,
            topic=mcq.topic,
            subtopic=mcq.subtopic,
            difficulty=mcq.difficulty,
            bloom_level=mcq.bloom_level,
            question=mcq.question,
            options=list(mcq.options or []),
            code=mcq.code,
            correct_index=mcq.correct_index,
            citations=list(mcq.citations or []),
            explanation=explanation,
        )


def score_tier(score_percentage: float) -> str:
    for threshold, tier in TIERS:
        if score_percentage >= threshold:
            return tier
    return TIERS[-1][1]


def _breakdown(items: Sequence[ReviewItem], key: Callable[[ReviewItem], Optional[str]]) -> List[Dict[str, Any]]:
    """Accuracy per category, grouped case-insensitively, in first-seen order."""
    stats: Dict[str, Dict[str, int]] = {}
    for item in items:
        raw = key(item)
        if not raw:
            continue
        category = raw.strip().lower()
        bucket = stats.setdefault(category, {"correct": 0, "total": 0})
        bucket["total"] += 1
        if item.is_correct:
            bucket["correct"] += 1

    return [
        {
            "category": category,
            "correct": s["correct"],
            "total": s["total"],
            "accuracy": s["correct"] / s["total"] if s["total"] else 0.0,
        }
        for category, s in stats.items()
    ]


class ResultsAggregator:
    """Compute the results payload for a completed attempt."""

    def build(self, attempt: Any, rows: Sequence[Any]) -> Dict[str, Any]:
        items = sorted((ReviewItem.from_row(r) for r in rows), key=lambda i: i.question_order)

        total = attempt.total_questions
        correct = sum(1 for i in items if i.is_correct)
        score_percentage = round(correct / total * 100) if total else 0
        metadata = attempt.attempt_metadata or {}

        subtopic_breakdown = _breakdown(items, lambda i: i.subtopic)

        return {
            "summary": {
                "total_questions": total,
                "correct_count": correct,
                "score_percentage": score_percentage,
                "time_spent_seconds": metadata.get("time_spent_seconds", 0) or 0,
                "tier": score_tier(score_percentage),
            },
            "topic_breakdown": _breakdown(items, lambda i: i.topic),
            "subtopic_breakdown": subtopic_breakdown,
            "bloom_breakdown": _breakdown(items, lambda i: i.bloom_level),
            "difficulty_breakdown": _breakdown(items, lambda i: i.difficulty),
            "weak_areas": self.weak_areas(items, subtopic_breakdown),
            "questions": [self._review(i) for i in items],
        }

    def weak_areas(self, items: Sequence[ReviewItem], subtopic_breakdown: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        weak = [
            b for b in subtopic_breakdown
            if b["accuracy"] < WEAK_AREA_ACCURACY and b["total"] >= WEAK_AREA_MIN_QUESTIONS
        ]
        weak.sort(key=lambda b: b["accuracy"])

        areas = []
        for b in weak[:WEAK_AREA_LIMIT]:
            example = next(
                (i for i in items if i.subtopic and i.subtopic.strip().lower() == b["category"]),
                None,
            )
            topic = example.topic if example else ""
            citation = ""
            if example and example.citations:
                citation = (example.citations[0] or {}).get("url", "") or ""

            areas.append({
                "subtopic": b["category"],
                "topic": topic,
                "accuracy": b["accuracy"],
                "priority": "critical" if b["accuracy"] < CRITICAL_ACCURACY else "high",
                "recommendation": RECOMMENDATION_TEMPLATE.format(
                    topic=topic,
                    subtopic=b["category"],
                    pct=round(b["accuracy"] * 100),
                    total=b["total"],
                ),
                "citation": citation,
            })
        return areas

    @staticmethod
    def _review(item: ReviewItem) -> Dict[str, Any]:
        return {
            "question_order": item.question_order,
            "question_text": item.question,
            "options": item.options,
            "code": item.code,
            "user_answer_index": item.user_answer_index,
            "correct_index": item.correct_index,
            "is_correct": bool(item.is_correct),
            "explanation": item.explanation or "",
            "citations": item.citations,
            "metadata": {
                "topic": item.topic,
                "subtopic": item.subtopic or "",
                "difficulty": item.difficulty,
                "bloom_level": item.bloom_level,
            },
        }
