"""Evaluation Configuration Constants.

Two kinds of values live here:

- `EvaluationPolicy`: the fixed exam shape (60 questions, 30/20/10 difficulty
  split, 35% coding floor). These are policy, not tunables.
- `SelectionConfig`: tunable thresholds, penalties and retry bounds used by the
  next-question pipeline. YAML overrides are applied by `load_selection_config`.
"""

import math
from dataclasses import dataclass, field, fields, is_dataclass, replace
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class EvaluationPolicy:
    """Fixed shape of an evaluation attempt."""

    total_questions: int = 60
    easy_questions: int = 30
    medium_questions: int = 20
    hard_questions: int = 10
    coding_ratio: float = 0.35  # 21 of 60
    max_topic_ratio: float = 0.40  # No single topic exceeds 40%

    def difficulty_targets(self, total_questions: Optional[int] = None) -> Dict[str, int]:
        """Difficulty quotas, scaled proportionally when total differs from 60.

        Rounding remainders go to Easy so the quotas always sum to the total.
        """
        total = total_questions or self.total_questions
        if total == self.total_questions:
            return {
                "Easy": self.easy_questions,
                "Medium": self.medium_questions,
                "Hard": self.hard_questions,
            }
        medium = int(total * self.medium_questions / self.total_questions)
        hard = int(total * self.hard_questions / self.total_questions)
        return {"Easy": total - medium - hard, "Medium": medium, "Hard": hard}

    def coding_target(self, total_questions: Optional[int] = None) -> int:
        total = total_questions or self.total_questions
        return math.ceil(round(total * self.coding_ratio, 6))


@dataclass
class SimilarityConfig:
    """Cosine / Jaccard thresholds for duplicate detection."""

    attempt_threshold: float = 0.85  # Generated draft vs questions already asked in attempt
    bank_threshold_high: float = 0.92
    bank_threshold_medium: float = 0.85
    text_jaccard_threshold: float = 0.7


@dataclass
class PenaltyConfig:
    """Score penalties applied to bank candidates."""

    attempt_similarity_high: float = 50  # Near-identical to something asked in this attempt
    attempt_similarity_medium: float = 25
    neighbor_high: float = 30  # Similar to something generally common in the bank
    neighbor_medium: float = 15
    cross_attempt_freshness: float = 15  # Asked in one of the last completed attempts


@dataclass
class TopicBalanceConfig:
    """Stage-dependent caps on how often one topic may appear."""

    limit: int = 24  # Late stage cap (40% of 60)
    early_stage_cap: int = 18  # ≤20 answered: 30% of 60
    mid_stage_cap: int = 24  # 21-40 answered: 40% of 60
    early_stage_threshold: int = 20
    mid_stage_threshold: int = 40
    early_penalty: float = 40
    mid_penalty: float = 25


@dataclass
class CandidateScoringConfig:
    """Preference boosts and top-K pick size."""

    topic_boost: float = 50
    subtopic_boost: float = 30
    bloom_boost: float = 20
    coding_boost: float = 40
    top_k: int = 8
    usability_floor: float = -50  # Candidates scoring below this are never picked


@dataclass
class GenerationConfig:
    """On-demand question generation."""

    max_attempts: int = 3
    negative_examples_limit: int = 25
    negative_examples_lookback: int = 20
    neighbor_top_k: int = 8
    neighbor_high_similarity_threshold: float = 0.92
    context_top_k: int = 8
    code_min_lines: int = 3
    code_max_lines: int = 50
    judge_enabled: bool = False


@dataclass
class AssignmentConfig:
    """Slot reservation retry policy."""

    max_retries: int = 3
    backoff_base_ms: int = 100  # 100ms, 200ms, 400ms


@dataclass
class BankQueryConfig:
    limit: int = 20


@dataclass
class FreshnessConfig:
    look_back_count: int = 2  # Completed attempts checked for cross-attempt freshness


@dataclass
class TimeoutConfig:
    """Deadlines (seconds) for provider calls."""

    selector_seconds: float = 20.0
    generator_seconds: float = 60.0
    judge_seconds: float = 30.0
    embedding_seconds: float = 30.0


@dataclass
class SelectionConfig:
    """Master configuration for the next-question pipeline."""

    similarity: SimilarityConfig = field(default_factory=SimilarityConfig)
    penalties: PenaltyConfig = field(default_factory=PenaltyConfig)
    topic_balance: TopicBalanceConfig = field(default_factory=TopicBalanceConfig)
    scoring: CandidateScoringConfig = field(default_factory=CandidateScoringConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    assignment: AssignmentConfig = field(default_factory=AssignmentConfig)
    bank_query: BankQueryConfig = field(default_factory=BankQueryConfig)
    freshness: FreshnessConfig = field(default_factory=FreshnessConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)

    @classmethod
    def default(cls) -> "SelectionConfig":
        """Create default configuration."""
        return cls()

    @classmethod
    def from_dict(cls, overrides: Optional[Dict[str, Any]]) -> "SelectionConfig":
        """Build a configuration from a nested dict (e.g. a YAML section).

        Unknown sections and keys are ignored.
        """
        config = cls()
        for section in fields(config):
            values = (overrides or {}).get(section.name)
            current = getattr(config, section.name)
            if not isinstance(values, dict) or not is_dataclass(current):
                continue
            known = {f.name for f in fields(current)}
            accepted = {k: v for k, v in values.items() if k in known}
            if accepted:
                setattr(config, section.name, replace(current, **accepted))
        return config


# Default instances
POLICY = EvaluationPolicy()
DEFAULT_CONFIG = SelectionConfig.default()


def load_selection_config() -> SelectionConfig:
    """Selection config with overrides from the `evaluation` YAML section."""
    from ..config.config_loader import get_evaluation_config

    return SelectionConfig.from_dict(get_evaluation_config())
