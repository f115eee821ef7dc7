"""OpenAI LLM and embedding provider implementations."""

import logging
import time
from typing import List, Optional

import openai
from llama_index.core.llms import ChatMessage, MessageRole
from llama_index.embeddings.openai import OpenAIEmbedding
from llama_index.llms.openai import OpenAI

from ..interfaces import EmbeddingProvider, LLMProvider
from ...api.core.exceptions import ConfigurationError, EmbeddingCountMismatchError
from ...setting import SkillCheckSettings, get_settings

logger = logging.getLogger(__name__)


class OpenAILLMProvider(LLMProvider):
    """
    OpenAI chat-completion provider used for criteria selection, question
    generation and judging.

    JSON mode maps to ``response_format={"type": "json_object"}``.
    """

    # O-series reasoning models only support temperature=1
    REASONING_MODELS = {"o1", "o1-mini", "o1-preview", "o3", "o3-mini", "o3-pro", "o4-mini"}

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        setting: Optional[SkillCheckSettings] = None,
    ):
        self._setting = setting or get_settings()

        self._model = model or self._setting.llm.model
        self._api_key = api_key or self._setting.llm.api_key
        self._temperature = 1.0 if self._model in self.REASONING_MODELS else temperature
        self._max_tokens = max_tokens or self._setting.llm.max_tokens

        if not self._api_key:
            raise ConfigurationError("OpenAI API key required. Set OPENAI_API_KEY environment variable.")

        self._llm: Optional[OpenAI] = None
        self._initialize()

    def _initialize(self) -> None:
        """Initialize the OpenAI client."""
        kwargs = {
            "model": self._model,
            "api_key": self._api_key,
            "temperature": self._temperature,
        }

        if self._max_tokens:
            kwargs["max_tokens"] = self._max_tokens

        self._llm = OpenAI(**kwargs)

        logger.debug(f"Initialized OpenAI provider with model: {self._model}")

    def complete(self, system_prompt: str, user_prompt: str, json_mode: bool = True, **kwargs) -> str:
        """Run one chat completion and return the message text."""
        if self._llm is None:
            raise RuntimeError("OpenAI client not initialized")

        messages = [
            ChatMessage(role=MessageRole.SYSTEM, content=system_prompt),
            ChatMessage(role=MessageRole.USER, content=user_prompt),
        ]
        if json_mode:
            kwargs.setdefault("response_format", {"type": "json_object"})

        response = self._llm.chat(messages, **kwargs)
        return response.message.content or ""

    @property
    def name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    OpenAI embeddings with batching, truncation and bounded retry.

    Retries only rate limits (429) and server errors (5xx), with doubling
    backoff. Any other error propagates unchanged.
    """

    MAX_BATCH_SIZE = 256

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        setting: Optional[SkillCheckSettings] = None,
        sleep=time.sleep,
    ):
        self._setting = setting or get_settings()
        cfg = self._setting.embedding

        self._model = model or cfg.model
        api_key = api_key or self._setting.llm.api_key
        if not api_key:
            raise ConfigurationError("OpenAI API key required. Set OPENAI_API_KEY environment variable.")

        self._batch_size = max(1, min(self.MAX_BATCH_SIZE, int(cfg.batch_size)))
        self._truncate_chars = cfg.truncate_chars
        self._max_retries = cfg.max_retries
        self._backoff_base_ms = cfg.backoff_base_ms
        self._sleep = sleep

        self._embedding = OpenAIEmbedding(model=self._model, api_key=api_key)
        logger.debug(f"Initialized OpenAI embedding provider with model: {self._model}")

    @property
    def model_name(self) -> str:
        return self._model

    def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        prepared = [(t or "")[:self._truncate_chars] for t in texts]
        vectors: List[List[float]] = []
        for start in range(0, len(prepared), self._batch_size):
            batch = prepared[start:start + self._batch_size]
            result = self._embed_batch_with_retry(batch)
            if len(result) != len(batch):
                raise EmbeddingCountMismatchError(expected=len(batch), received=len(result))
            vectors.extend(result)

        if len(vectors) != len(texts):
            raise EmbeddingCountMismatchError(expected=len(texts), received=len(vectors))
        return vectors

    def _embed_batch_with_retry(self, batch: List[str]) -> List[List[float]]:
        for attempt in range(self._max_retries + 1):
            try:
                return self._embedding.get_text_embedding_batch(batch)
            except (openai.RateLimitError, openai.InternalServerError) as e:
                if attempt >= self._max_retries:
                    raise
                delay_ms = self._backoff_base_ms * (2 ** attempt)
                logger.warning(
                    f"embedding_retry: attempt={attempt + 1}, batch_size={len(batch)}, "
                    f"delay_ms={delay_ms}, error={e.__class__.__name__}"
                )
                self._sleep(delay_ms / 1000.0)
        # Unreachable: the loop either returns or raises
        raise RuntimeError("embedding retry loop exited without a result")
