"""Abstract interfaces for the external LLM and embedding collaborators."""

from .llm import LLMProvider
from .embedding import EmbeddingProvider

__all__ = [
    "LLMProvider",
    "EmbeddingProvider",
]
