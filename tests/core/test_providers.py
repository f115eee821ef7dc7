"""Tests for the OpenAI provider surface."""

from skillcheck.core.interfaces import LLMProvider
from skillcheck.core.providers import OpenAILLMProvider


def _public(cls):
    return {name for name in dir(cls) if not name.startswith("_") and not name.isupper()}


class TestOpenAILLMProvider:
    """Tests for OpenAILLMProvider."""

    def test_exposes_only_the_interface(self):
        assert _public(OpenAILLMProvider) == _public(LLMProvider) == {"complete", "name", "model_name"}
