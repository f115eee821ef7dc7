"""Topic / subtopic ontology access with a hardcoded fallback."""

import logging
from typing import Dict, List

from ..config import config_loader

logger = logging.getLogger(__name__)

# Used only when config/ontology.yaml is missing or unreadable
FALLBACK_TOPICS: List[str] = [
    "React",
    "JavaScript",
    "TypeScript",
    "HTML",
    "CSS",
    "State Management",
    "Routing",
    "Testing",
    "Accessibility",
    "PWA",
]


def load_topic_map() -> Dict[str, List[str]]:
    """Topic -> subtopics from the ontology file, or {} when unavailable."""
    try:
        return config_loader.get_topic_map()
    except Exception as e:
        logger.warning(f"ontology_unavailable: error={e.__class__.__name__}: {e}")
        return {}


def get_topic_list() -> List[str]:
    topics = list(load_topic_map().keys())
    if not topics:
        logger.warning("ontology_fallback: using hardcoded topic list")
        return list(FALLBACK_TOPICS)
    return topics


def get_subtopics(topic: str) -> List[str]:
    return list(load_topic_map().get(topic, []))


def get_topic_weights() -> Dict[str, float]:
    try:
        return config_loader.get_topic_weights()
    except Exception as e:
        logger.warning(f"ontology_unavailable: error={e.__class__.__name__}: {e}")
        return {}
