"""Base service class providing common functionality.

Every evaluation service inherits from this class. It holds the database
manager and selection configuration, a class-named logger, and helpers for
ownership checks and structured operation logging.
"""

import logging
import uuid
from typing import TYPE_CHECKING, Any, Optional

from ...api.core.exceptions import ConfigurationError, NotFoundError, ValidationError
from ..db.models import Attempt
from ..evaluate.config import DEFAULT_CONFIG, SelectionConfig

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from ..db import DatabaseManager


class BaseService:
    """Base class for all service implementations.

    Subclasses get the selection configuration, a logger named after the
    class, and the attempt ownership lookup used by every route.
    """

    def __init__(
        self,
        db_manager: Optional["DatabaseManager"] = None,
        config: Optional[SelectionConfig] = None
    ):
        """Initialize base service.

        Args:
            db_manager: DatabaseManager for persistence
            config: Selection configuration (defaults to DEFAULT_CONFIG)
        """
        self._db_manager = db_manager
        self._config = config or DEFAULT_CONFIG

        # Configure logger with class name
        self._logger = logging.getLogger(self.__class__.__name__)
        self._logger.setLevel(logging.INFO)

    @property
    def config(self) -> SelectionConfig:
        return self._config

    def _validate_database_available(self) -> None:
        """Validate that database features are available.

        Raises:
            ConfigurationError: If database manager is not configured
        """
        if self._db_manager is None:
            raise ConfigurationError(
                f"{self.__class__.__name__} needs a database; set DATABASE_URL"
            )

    def _get_owned_attempt(
        self,
        session: "Session",
        attempt_id: Any,
        user_id: Any,
        for_update: bool = False
    ) -> Attempt:
        """Load an attempt that belongs to user_id.

        Attempts owned by someone else are reported as not found.

        Raises:
            ValidationError: If attempt_id is not a valid id
            NotFoundError: If no such attempt exists for this user
        """
        attempt_key = _parse_uuid(attempt_id, "attempt_id")
        query = session.query(Attempt).filter(
            Attempt.id == attempt_key,
            Attempt.user_id == _parse_uuid(user_id, "user_id"),
        )
        if for_update:
            query = query.with_for_update()
        attempt = query.first()
        if attempt is None:
            raise NotFoundError("Attempt", attempt_id)
        return attempt

    def _log_operation(
        self,
        operation: str,
        **kwargs
    ) -> None:
        """Log a service operation with context.

        Args:
            operation: Operation (event) name
            **kwargs: Additional context to log
        """
        context = ", ".join(f"{k}={v}" for k, v in kwargs.items())
        self._logger.info(f"{operation}: {context}")

    def _log_error(
        self,
        operation: str,
        error: Exception,
        **kwargs
    ) -> None:
        """Log an error with context.

        Args:
            operation: Operation that failed
            error: Exception that occurred
            **kwargs: Additional context to log
        """
        context = ", ".join(f"{k}={v}" for k, v in kwargs.items())
        self._logger.error(
            f"{operation} failed: {error.__class__.__name__}: {error}",
            extra={"context": context},
            exc_info=True
        )


def _parse_uuid(value: Any, field_name: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field_name}", details={"field": field_name})
