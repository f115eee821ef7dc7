"""Service layer for the evaluation engine.

Services sit between the Flask routes and the evaluation core. They own
sessions, ownership checks and state transitions; the core components they
call stay free of HTTP concerns.
"""

from .base import BaseService
from .selection_service import SelectionService
from .attempt_service import AttemptService
from .results_service import ResultsService

__all__ = [
    "BaseService",
    "SelectionService",
    "AttemptService",
    "ResultsService",
]
