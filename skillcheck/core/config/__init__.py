"""YAML configuration loading (config/skillcheck.yaml, config/ontology.yaml)."""

from .config_loader import (
    get_config_path,
    load_app_config,
    load_ontology_config,
    get_evaluation_config,
    get_llm_settings,
    get_embedding_settings,
    get_database_settings,
    get_topic_map,
    get_topic_weights,
    reload_configs,
)

__all__ = [
    "get_config_path",
    "load_app_config",
    "load_ontology_config",
    "get_evaluation_config",
    "get_llm_settings",
    "get_embedding_settings",
    "get_database_settings",
    "get_topic_map",
    "get_topic_weights",
    "reload_configs",
]
