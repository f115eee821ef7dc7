"""Configuration loader for YAML config files.

Loads configuration from config/skillcheck.yaml (runtime settings) and
config/ontology.yaml (topic/subtopic ontology).

Config files are loaded once at startup and cached.
"""

import logging
import yaml
from pathlib import Path
from functools import lru_cache
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


def get_config_path() -> Path:
    """Get path to config directory.

    Searches in order:
    1. Relative to this file's project root
    2. Current working directory
    """
    # Go up: config_loader.py -> config -> core -> skillcheck -> project_root
    current_file = Path(__file__)
    project_root = current_file.parent.parent.parent.parent
    config_path = project_root / "config"

    if config_path.exists():
        return config_path

    cwd_config = Path.cwd() / "config"
    if cwd_config.exists():
        return cwd_config

    # Return project path even if doesn't exist (for error messages)
    return config_path


def _load_yaml_file(filename: str) -> Dict[str, Any]:
    """Load a YAML config file.

    Args:
        filename: Name of the YAML file (e.g., 'skillcheck.yaml')

    Returns:
        Parsed YAML as dictionary, empty dict if file not found
    """
    config_path = get_config_path() / filename

    if not config_path.exists():
        logger.debug(f"Config file not found: {config_path}")
        return {}

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)
            logger.debug(f"Loaded config from {config_path}")
            return data or {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing {config_path}: {e}")
        return {}
    except OSError as e:
        logger.error(f"Error loading {config_path}: {e}")
        return {}


@lru_cache(maxsize=1)
def load_app_config() -> Dict[str, Any]:
    """Load runtime configuration from config/skillcheck.yaml.

    Returns:
        Dictionary with all configuration sections
    """
    return _load_yaml_file("skillcheck.yaml")


def get_evaluation_config() -> Dict[str, Any]:
    """Get the `evaluation` section (selection pipeline tunables)."""
    return load_app_config().get("evaluation", {}) or {}


def get_llm_settings() -> Dict[str, Any]:
    """Get the `llm` section."""
    return load_app_config().get("llm", {}) or {}


def get_embedding_settings() -> Dict[str, Any]:
    """Get the `embedding` section."""
    return load_app_config().get("embedding", {}) or {}


def get_database_settings() -> Dict[str, Any]:
    """Get the `database` section."""
    return load_app_config().get("database", {}) or {}


@lru_cache(maxsize=1)
def load_ontology_config() -> Dict[str, Any]:
    """Load the topic ontology from config/ontology.yaml.

    Returns:
        Dictionary with a `topics` mapping of topic -> {weight, subtopics}
    """
    return _load_yaml_file("ontology.yaml")


def get_topic_map() -> Dict[str, List[str]]:
    """Topic -> subtopic names, in file order."""
    topics = load_ontology_config().get("topics", {}) or {}
    return {
        str(name): [str(s) for s in (meta or {}).get("subtopics", []) or []]
        for name, meta in topics.items()
    }


def get_topic_weights() -> Dict[str, float]:
    """Topic -> relative exam weight."""
    topics = load_ontology_config().get("topics", {}) or {}
    return {
        str(name): float((meta or {}).get("weight", 0) or 0)
        for name, meta in topics.items()
    }


def reload_configs() -> None:
    """Clear cached configs (for tests and hot reload)."""
    load_app_config.cache_clear()
    load_ontology_config.cache_clear()
