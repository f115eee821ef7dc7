"""Similarity search over stored question and document embeddings."""

from .question_store import Neighbor, QuestionStore

__all__ = ["Neighbor", "QuestionStore"]
