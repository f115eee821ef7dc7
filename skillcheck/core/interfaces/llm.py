"""Abstract interface for LLM providers."""

from abc import ABC, abstractmethod


class LLMProvider(ABC):
    """
    Abstract base class for LLM completion providers.

    Callers treat the returned text as untrusted input: it is parsed and
    validated before anything derived from it is persisted.
    """

    @abstractmethod
    def complete(self, system_prompt: str, user_prompt: str, json_mode: bool = True, **kwargs) -> str:
        """
        Generate a completion for a system + user prompt pair.

        Args:
            system_prompt: Instructions for the model
            user_prompt: The request itself
            json_mode: Ask the provider for a strict JSON object response
            **kwargs: Provider-specific parameters (temperature, max_tokens, etc.)

        Returns:
            The raw completion text
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the current model name."""
        pass
