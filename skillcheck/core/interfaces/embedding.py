"""Abstract interface for embedding providers."""

from abc import ABC, abstractmethod
from typing import List


class EmbeddingProvider(ABC):
    """
    Abstract base class for text embedding providers.

    Contract: ``embed(texts)`` returns exactly one vector per input, in input
    order. Implementations raise rather than return a short list.
    """

    @abstractmethod
    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Embed a batch of texts.

        Raises:
            EmbeddingCountMismatchError: If the provider returns a different number of vectors
        """
        pass

    def embed_one(self, text: str) -> List[float]:
        """Embed a single text."""
        return self.embed([text])[0]

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the embedding model name."""
        pass
