"""Request decorators for the evaluation API.

Authentication itself is handled outside this service. The caller's user id
is taken, in order, from the Flask session, the ``X-User-ID`` header (set by
the fronting gateway), or ``DEV_DEFAULT_USER_ID`` for local development.

Usage:
    @app.route("/api/evaluate/attempts", methods=["POST"])
    @require_user
    def create_attempt():
        user_id = request.user_id
        ...
"""

import logging
import uuid
from functools import wraps
from typing import Any, Callable, Optional, TypeVar, cast

from flask import current_app, request, session

from .exceptions import AuthenticationError

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def _coerce_user_id(raw: Any) -> Optional[str]:
    if not raw:
        return None
    try:
        return str(uuid.UUID(str(raw)))
    except ValueError:
        logger.warning(f"Ignoring malformed user id: {raw!r}")
        return None


def resolve_user_id() -> Optional[str]:
    """Resolve the caller's user id from session, header, or dev default."""
    user_id = _coerce_user_id(session.get("user_id"))
    if user_id:
        return user_id

    user_id = _coerce_user_id(request.headers.get("X-User-ID"))
    if user_id:
        return user_id

    return _coerce_user_id(current_app.config.get("DEV_DEFAULT_USER_ID"))


def require_user(f: F) -> F:
    """Reject the request with 401 unless a user id can be resolved.

    Sets request.user_id on success.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        user_id = resolve_user_id()
        if not user_id:
            raise AuthenticationError("Please log in to take an evaluation")

        request.user_id = user_id
        return f(*args, **kwargs)

    return cast(F, decorated)
