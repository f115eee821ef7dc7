"""Distribution Calculator.

Folds the questions assigned to an attempt so far into difficulty buckets,
a coding count and topic / subtopic / Bloom histograms. Always computed from
persisted rows; nothing here is cached.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .config import POLICY, TopicBalanceConfig


@dataclass
class Distributions:
    easy_count: int = 0
    medium_count: int = 0
    hard_count: int = 0
    coding_count: int = 0
    topic_distribution: Dict[str, int] = field(default_factory=dict)
    subtopic_distribution: Dict[str, int] = field(default_factory=dict)
    bloom_distribution: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.easy_count + self.medium_count + self.hard_count

    def difficulty_counts(self) -> Dict[str, int]:
        return {"Easy": self.easy_count, "Medium": self.medium_count, "Hard": self.hard_count}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "easy_count": self.easy_count,
            "medium_count": self.medium_count,
            "hard_count": self.hard_count,
            "coding_count": self.coding_count,
            "topic_distribution": dict(self.topic_distribution),
            "subtopic_distribution": dict(self.subtopic_distribution),
            "bloom_distribution": dict(self.bloom_distribution),
        }


def _field(row: Any, name: str) -> Any:
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def _bump(histogram: Dict[str, int], key: Optional[str]) -> None:
    if key is None:
        return
    key = str(key).strip()
    if not key or key.lower() in ("undefined", "null", "none"):
        return
    histogram[key] = histogram.get(key, 0) + 1


def calculate_distributions(questions: Iterable[Any]) -> Distributions:
    """Fold assigned bank questions into a Distributions.

    Each item only needs ``difficulty``, ``code``, ``topic``, ``subtopic`` and
    ``bloom_level``; ORM rows and plain dicts both work. A missing subtopic is
    not counted.
    """
    dist = Distributions()
    for q in questions:
        difficulty = str(_field(q, "difficulty") or "").strip().lower()
        if difficulty == "easy":
            dist.easy_count += 1
        elif difficulty == "medium":
            dist.medium_count += 1
        elif difficulty == "hard":
            dist.hard_count += 1

        code = _field(q, "code")
        if code and str(code).strip():
            dist.coding_count += 1

        _bump(dist.topic_distribution, _field(q, "topic"))
        _bump(dist.subtopic_distribution, _field(q, "subtopic"))
        _bump(dist.bloom_distribution, _field(q, "bloom_level"))
    return dist


def topic_cap_for_stage(questions_answered: int, balance: TopicBalanceConfig) -> int:
    """Per-topic cap for the current stage of the attempt (stricter early)."""
    if questions_answered <= balance.early_stage_threshold:
        return balance.early_stage_cap
    if questions_answered <= balance.mid_stage_threshold:
        return balance.mid_stage_cap
    return balance.limit


def topic_penalty_for_stage(questions_answered: int, balance: TopicBalanceConfig) -> float:
    if questions_answered <= balance.early_stage_threshold:
        return balance.early_penalty
    if questions_answered <= balance.mid_stage_threshold:
        return balance.mid_penalty
    return balance.mid_penalty


def identify_overrepresented_topics(
    topic_distribution: Dict[str, int],
    questions_answered: int,
    balance: Optional[TopicBalanceConfig] = None,
) -> List[str]:
    """Topics already at or above the stage cap."""
    balance = balance or TopicBalanceConfig()
    cap = topic_cap_for_stage(questions_answered, balance)
    return sorted(t for t, count in topic_distribution.items() if count >= cap)


def remaining_difficulty_quota(dist: Distributions, total_questions: int) -> Dict[str, int]:
    """Questions still needed per difficulty tier, never negative."""
    targets = POLICY.difficulty_targets(total_questions)
    counts = dist.difficulty_counts()
    return {tier: max(0, targets[tier] - counts.get(tier, 0)) for tier in targets}


def remaining_coding_need(dist: Distributions, total_questions: int) -> int:
    return max(0, POLICY.coding_target(total_questions) - dist.coding_count)
