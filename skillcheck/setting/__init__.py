from .setting import (
    SkillCheckSettings,
    LLMSettings,
    EmbeddingSettings,
    DatabaseSettings,
    EvaluationSettings,
    get_settings,
)

__all__ = [
    "SkillCheckSettings",
    "LLMSettings",
    "EmbeddingSettings",
    "DatabaseSettings",
    "EvaluationSettings",
    "get_settings",
]
