"""Types shared by the evaluation pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"

    @classmethod
    def values(cls) -> List[str]:
        return [d.value for d in cls]

    @classmethod
    def parse(cls, value: Any) -> Optional["Difficulty"]:
        """Case-insensitive lookup; None for anything unrecognised."""
        if not isinstance(value, str):
            return None
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        return None


class BloomLevel(str, Enum):
    REMEMBER = "Remember"
    UNDERSTAND = "Understand"
    APPLY = "Apply"
    ANALYZE = "Analyze"
    EVALUATE = "Evaluate"
    CREATE = "Create"

    @classmethod
    def values(cls) -> List[str]:
        return [b.value for b in cls]

    @classmethod
    def parse(cls, value: Any) -> Optional["BloomLevel"]:
        if not isinstance(value, str):
            return None
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        return None


class SelectionMethod(str, Enum):
    """How the question for a slot was obtained."""
    PENDING = "pending"
    BANK = "bank"
    GENERATED = "generated"
    FALLBACK = "fallback"


class SimilarityGate(str, Enum):
    """Reasons a generated draft is rejected as a near-duplicate."""
    CONTENT_KEY = "content_key"
    BANK_NEIGHBOR = "bank_neighbor"
    ATTEMPT_EMBEDDING = "attempt_embedding"
    TEXT_OVERLAP = "text_overlap"


@dataclass(frozen=True)
class LLMResult(Generic[T]):
    """Outcome of an LLM call after parsing and validation.

    Either ``ok`` with a ``value`` or not ok with a ``reason``. Nothing from an
    LLM response reaches persisted state without passing through one of these.
    """
    ok: bool
    value: Optional[T] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "LLMResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> "LLMResult[T]":
        return cls(ok=False, reason=reason)


@dataclass
class SelectionCriteria:
    """Target profile for the next question. Advisory, never persisted."""
    difficulty: str
    coding_mode: bool
    preferred_topic: Optional[str] = None
    preferred_subtopic: Optional[str] = None
    preferred_bloom_level: Optional[str] = None
    reasoning: str = ""
    source: str = "llm"  # "llm" | "fallback"


@dataclass
class ScoredCandidate:
    """A bank question with its selection score and the parts that made it."""
    question_id: Any
    topic: str
    subtopic: Optional[str]
    difficulty: str
    bloom_level: str
    has_code: bool
    embedding: Optional[List[float]] = None
    score: float = 0.0
    attempt_similarity: float = 0.0
    neighbor_similarity: float = 0.0
    seen_recently: bool = False
    breakdown: Dict[str, float] = field(default_factory=dict)


@dataclass
class GeneratedQuestion:
    """A validated LLM draft, ready to persist to the bank."""
    topic: str
    subtopic: Optional[str]
    difficulty: str
    bloom_level: str
    question: str
    options: List[str]
    correct_index: int
    code: Optional[str] = None
    explanation: Optional[str] = None
    citations: List[Dict[str, str]] = field(default_factory=list)
    version: Optional[str] = None
