"""SkillCheck Settings Module.

Loads configuration from config/skillcheck.yaml with environment variables
(and .env) taking precedence for secrets and deployment-specific values.
"""

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from skillcheck.core.config.config_loader import (
    get_database_settings,
    get_embedding_settings,
    get_llm_settings,
)

load_dotenv()


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class LLMSettings(BaseModel):
    """LLM settings (config/skillcheck.yaml llm section)."""

    model: str = Field(
        default_factory=lambda: os.getenv("LLM_MODEL") or get_llm_settings().get("model", "gpt-4o-mini"),
        description="OpenAI chat model used for criteria selection, generation and judging"
    )
    api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("OPENAI_API_KEY"),
        description="OpenAI API key"
    )
    selector_temperature: float = Field(
        default_factory=lambda: get_llm_settings().get("selector_temperature", 0.3)
    )
    generator_temperature: float = Field(
        default_factory=lambda: get_llm_settings().get("generator_temperature", 0.2)
    )
    judge_temperature: float = Field(
        default_factory=lambda: get_llm_settings().get("judge_temperature", 0.0)
    )
    max_tokens: int = Field(
        default_factory=lambda: get_llm_settings().get("max_tokens", 1500)
    )


class EmbeddingSettings(BaseModel):
    """Embedding settings (config/skillcheck.yaml embedding section)."""

    model: str = Field(
        default_factory=lambda: os.getenv("EMBED_MODEL") or get_embedding_settings().get("model", "text-embedding-3-small")
    )
    batch_size: int = Field(
        default_factory=lambda: get_embedding_settings().get("batch_size", 64),
        description="Texts per provider request (1..256)"
    )
    truncate_chars: int = Field(
        default_factory=lambda: get_embedding_settings().get("truncate_chars", 8000)
    )
    max_retries: int = Field(
        default_factory=lambda: get_embedding_settings().get("max_retries", 2)
    )
    backoff_base_ms: int = Field(
        default_factory=lambda: get_embedding_settings().get("backoff_base_ms", 500)
    )


class DatabaseSettings(BaseModel):
    """Database settings; DATABASE_URL is required to serve requests."""

    url: Optional[str] = Field(
        default_factory=lambda: os.getenv("DATABASE_URL")
    )
    pool_size: int = Field(
        default_factory=lambda: get_database_settings().get("pool_size", 10)
    )
    max_overflow: int = Field(
        default_factory=lambda: get_database_settings().get("max_overflow", 20)
    )
    pool_timeout: int = Field(
        default_factory=lambda: get_database_settings().get("pool_timeout", 30)
    )
    pool_recycle: int = Field(
        default_factory=lambda: get_database_settings().get("pool_recycle", 3600)
    )


class EvaluationSettings(BaseModel):
    """Deployment switches for the evaluation API."""

    dev_default_user_id: Optional[str] = Field(
        default_factory=lambda: os.getenv("DEV_DEFAULT_USER_ID"),
        description="User id assumed when a request carries none (local development only)"
    )
    enable_dev_reset: bool = Field(
        default_factory=lambda: _env_flag("ENABLE_DEV_RESET"),
        description="Expose POST /api/evaluate/attempts/reset"
    )


class SkillCheckSettings(BaseModel):
    llm: LLMSettings = Field(default_factory=LLMSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    evaluation: EvaluationSettings = Field(default_factory=EvaluationSettings)


@lru_cache(maxsize=1)
def get_settings() -> SkillCheckSettings:
    """Get singleton SkillCheckSettings instance. Use this instead of SkillCheckSettings()."""
    return SkillCheckSettings()
