"""Domain exceptions for the evaluation engine.

Services raise these; the error handler middleware turns them into JSON
responses with a status code and a machine-readable ``reason``.

Usage:
    from skillcheck.api.core.exceptions import NotFoundError, StateConflictError

    def get_owned_attempt(session, attempt_id, user_id):
        attempt = session.query(Attempt).filter_by(id=attempt_id, user_id=user_id).first()
        if not attempt:
            raise NotFoundError("Attempt", attempt_id)
        return attempt

    if attempt.status != "in_progress":
        raise StateConflictError(
            "Attempt is not in progress",
            reason="attempt_not_in_progress",
        )
"""

from typing import Any, Dict, List, Optional, Union


class SkillCheckError(Exception):
    """Base exception for all SkillCheck application errors.

    Attributes:
        message: Human-readable error message
        reason: Machine-readable error code
        status_code: HTTP status code to return
        details: Additional error details (optional)
    """

    status_code: int = 500
    default_message: str = "An error occurred"
    default_reason: str = "internal_error"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None
    ):
        self.message = message or self.default_message
        self.details = details or {}
        self.reason = reason or self.default_reason
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result = {
            "success": False,
            "error": self.message,
            "reason": self.reason,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(SkillCheckError):
    """Bad or missing request fields, e.g. an answer index outside 0..3.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"
    default_reason = "validation_failed"

    def __init__(
        self,
        message: Optional[Union[str, List[str]]] = None,
        details: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None
    ):
        if isinstance(message, list):
            message = "; ".join(message)
        super().__init__(message, details, reason)


class AuthenticationError(SkillCheckError):
    """No user could be resolved for the request.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Authentication required"
    default_reason = "authentication_required"


class AuthorizationError(SkillCheckError):
    """The caller may not perform this action (e.g. dev reset is disabled).

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    default_message = "Access denied"
    default_reason = "forbidden"


class NotFoundError(SkillCheckError):
    """Resource does not exist, or belongs to another user.

    Ownership failures are reported as not-found so attempt ids of other users
    cannot be discovered.

    HTTP Status: 404 Not Found

    Examples:
        raise NotFoundError("Attempt")
        raise NotFoundError("Attempt", "abc-123")
    """

    status_code = 404
    default_message = "Resource not found"
    default_reason = "not_found"

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if resource_id:
            message = f"{resource} not found: {resource_id}"
        else:
            message = f"{resource} not found"
        super().__init__(message, details, reason=f"{resource.lower().replace(' ', '_')}_not_found")


class StateConflictError(SkillCheckError):
    """The attempt is in the wrong state for the requested operation.

    HTTP Status: 409 Conflict

    Reasons:
        attempt_not_in_progress, attempt_not_completed, question_already_answered,
        question_not_assigned, attempt_already_in_progress
    """

    status_code = 409
    default_message = "Attempt state conflict"
    default_reason = "state_conflict"


class AssignmentError(SkillCheckError):
    """A question slot could not be reserved after bounded retries.

    Never swallowed: a silently skipped slot is what creates gaps.

    HTTP Status: 503 Service Unavailable
    """

    status_code = 503
    default_message = "Could not assign the next question, please retry"
    default_reason = "assignment_failed"


class ExternalServiceError(SkillCheckError):
    """An LLM or embedding provider call failed after retries.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"
    default_reason = "external_service_error"


class EmbeddingCountMismatchError(ExternalServiceError):
    """The embedding provider returned a different number of vectors than requested."""

    default_message = "Embedding provider returned the wrong number of vectors"
    default_reason = "embedding_count_mismatch"

    def __init__(self, expected: int, received: int):
        super().__init__(
            f"Embedding count mismatch: expected {expected}, received {received}",
            details={"expected": expected, "received": received},
        )
        self.expected = expected
        self.received = received


class ConfigurationError(SkillCheckError):
    """Missing or invalid configuration, e.g. no OPENAI_API_KEY.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    default_message = "Configuration error"
    default_reason = "configuration_error"
