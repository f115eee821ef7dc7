"""Adaptive question selection, generation, assignment and results."""

from .config import (
    POLICY,
    DEFAULT_CONFIG,
    EvaluationPolicy,
    SelectionConfig,
    load_selection_config,
)
from .types import (
    AttemptStatus,
    BloomLevel,
    Difficulty,
    LLMResult,
    ScoredCandidate,
    SelectionCriteria,
    SelectionMethod,
    SimilarityGate,
)
from .distributions import Distributions, calculate_distributions, identify_overrepresented_topics
from .criteria import CriteriaSelector
from .scorer import CandidateScorer
from .assignment import AssignmentOutcome, AssignmentTransaction
from .generator import AskedQuestion, QuestionGenerator, QuestionJudge
from .results import ResultsAggregator

__all__ = [
    "POLICY",
    "DEFAULT_CONFIG",
    "EvaluationPolicy",
    "SelectionConfig",
    "load_selection_config",
    "AttemptStatus",
    "BloomLevel",
    "Difficulty",
    "LLMResult",
    "ScoredCandidate",
    "SelectionCriteria",
    "SelectionMethod",
    "SimilarityGate",
    "Distributions",
    "calculate_distributions",
    "identify_overrepresented_topics",
    "CriteriaSelector",
    "CandidateScorer",
    "AssignmentOutcome",
    "AssignmentTransaction",
    "AskedQuestion",
    "QuestionGenerator",
    "QuestionJudge",
    "ResultsAggregator",
]
