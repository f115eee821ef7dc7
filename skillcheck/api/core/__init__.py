"""API Core - Shared utilities for API routes.

This package provides:
- Unified response builders (success_response, error_response)
- Domain exceptions (ValidationError, NotFoundError, StateConflictError, ...)
- The @require_user decorator
- Error handling middleware

Usage:
    from skillcheck.api.core import success_response
    from skillcheck.api.core.exceptions import StateConflictError
    from skillcheck.api.core.decorators import require_user
"""

from .response import (
    success_response,
    error_response,
)

from .exceptions import (
    SkillCheckError,
    ValidationError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    AssignmentError,
    ExternalServiceError,
    EmbeddingCountMismatchError,
    ConfigurationError,
)

__all__ = [
    # Response utilities
    "success_response",
    "error_response",
    # Exceptions
    "SkillCheckError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "StateConflictError",
    "AssignmentError",
    "ExternalServiceError",
    "EmbeddingCountMismatchError",
    "ConfigurationError",
]
