"""Database layer: ORM models and connection management."""

from .db import DatabaseManager, wait_for_db
from .models import (
    Base,
    Attempt,
    AttemptQuestion,
    McqItem,
    McqExplanation,
    DocumentChunk,
)

__all__ = [
    "DatabaseManager",
    "wait_for_db",
    "Base",
    "Attempt",
    "AttemptQuestion",
    "McqItem",
    "McqExplanation",
    "DocumentChunk",
]
