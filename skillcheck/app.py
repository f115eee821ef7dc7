"""Flask application factory for the SkillCheck evaluation API."""

import logging
import os
from typing import Any, Dict, Optional, Tuple

from flask import Flask

from .api.core.exceptions import ConfigurationError
from .api.core.middleware import register_all_middleware
from .api.core.response import error_response, success_response
from .api.routes.evaluate import create_evaluate_routes
from .core.db import DatabaseManager
from .core.evaluate.config import SelectionConfig, load_selection_config
from .core.interfaces import EmbeddingProvider, LLMProvider
from .core.services import AttemptService, ResultsService, SelectionService
from .setting import SkillCheckSettings, get_settings

logger = logging.getLogger(__name__)


def build_db_manager(settings: SkillCheckSettings) -> DatabaseManager:
    db = settings.database
    if not db.url:
        raise ConfigurationError("DATABASE_URL is required to serve evaluations")
    return DatabaseManager(
        db.url,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )


def _build_providers(
    settings: SkillCheckSettings,
) -> Tuple[Dict[str, LLMProvider], Optional[EmbeddingProvider]]:
    """OpenAI providers keyed by role, or ({}, None) when no API key is configured.

    Roles are "selector", "generator" and "judge", each at its configured
    temperature. Without providers the selector always uses its deterministic
    fallback and generation is skipped.
    """
    from .core.providers import OpenAIEmbeddingProvider, OpenAILLMProvider

    temperatures = {
        "selector": settings.llm.selector_temperature,
        "generator": settings.llm.generator_temperature,
        "judge": settings.llm.judge_temperature,
    }
    try:
        llms = {
            role: OpenAILLMProvider(temperature=temperature, setting=settings)
            for role, temperature in temperatures.items()
        }
        embedder = OpenAIEmbeddingProvider(setting=settings)
    except ConfigurationError as e:
        logger.warning(f"LLM providers unavailable, using deterministic fallbacks: {e.message}")
        return {}, None
    logger.info(
        f"LLM providers initialized: llm={llms['generator'].model_name}, embedding={embedder.model_name}, "
        f"temperatures={temperatures}"
    )
    return llms, embedder


def create_app(
    db_manager: Optional[DatabaseManager] = None,
    llm: Optional[LLMProvider] = None,
    embedder: Optional[EmbeddingProvider] = None,
    config: Optional[SelectionConfig] = None,
    settings: Optional[SkillCheckSettings] = None,
    overrides: Optional[Dict[str, Any]] = None,
    enable_logging: bool = True,
) -> Flask:
    """Build the Flask application.

    Args:
        db_manager: Database manager; built from DATABASE_URL when omitted
        llm: Completion provider for every role; built per role from
            OPENAI_API_KEY when omitted
        embedder: Embedding provider; built alongside the default llm
        config: Selection configuration; YAML-overridden defaults when omitted
        settings: Application settings
        overrides: Extra Flask config values (e.g. TESTING, DEV_DEFAULT_USER_ID)
        enable_logging: Register request logging middleware

    Returns:
        Flask: Configured Flask application
    """
    settings = settings or get_settings()
    config = config or load_selection_config()

    app = Flask(__name__)
    app.secret_key = os.getenv("FLASK_SECRET_KEY", os.urandom(24).hex())
    app.config["DEV_DEFAULT_USER_ID"] = settings.evaluation.dev_default_user_id
    app.config["ENABLE_DEV_RESET"] = settings.evaluation.enable_dev_reset
    app.config.update(overrides or {})

    if db_manager is None:
        db_manager = build_db_manager(settings)
    role_llms: Dict[str, LLMProvider] = {}
    if llm is None and embedder is None:
        role_llms, embedder = _build_providers(settings)
        llm = role_llms.get("generator")

    if not hasattr(app, 'extensions'):
        app.extensions = {}
    app.extensions['db_manager'] = db_manager

    selection_service = SelectionService(
        db_manager,
        llm=llm,
        embedder=embedder,
        config=config,
        selector_llm=role_llms.get("selector"),
        judge_llm=role_llms.get("judge"),
    )
    attempt_service = AttemptService(
        db_manager,
        selection_service,
        config=config,
        enable_dev_reset=bool(app.config.get("ENABLE_DEV_RESET")),
    )
    results_service = ResultsService(db_manager, config=config)

    register_all_middleware(app, enable_logging=enable_logging)
    create_evaluate_routes(app, attempt_service, results_service)

    @app.route('/api/health', methods=['GET'])
    def health():
        if not db_manager.health_check():
            return error_response("Database unavailable", 503, reason="database_unavailable")
        return success_response({"status": "ok"})

    logger.info("SkillCheck application created")
    return app
