"""Concrete provider implementations."""

from .openai import OpenAIEmbeddingProvider, OpenAILLMProvider

__all__ = [
    "OpenAILLMProvider",
    "OpenAIEmbeddingProvider",
]
