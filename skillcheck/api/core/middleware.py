"""Error handling and request logging for the Flask application.

Usage:
    from skillcheck.api.core.middleware import register_all_middleware

    app = Flask(__name__)
    register_all_middleware(app)
"""

import logging
import time
import traceback
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .exceptions import SkillCheckError
from .response import error_response

logger = logging.getLogger(__name__)


def register_error_handlers(app: Flask) -> None:
    """Register global error handlers for the Flask application.

    Domain exceptions keep their status code and reason. Anything unexpected
    becomes a generic 500 whose body carries no internal detail, so a failure
    deep in the selection pipeline can never leak answer data.

    Args:
        app: Flask application instance
    """

    @app.errorhandler(SkillCheckError)
    def handle_app_error(error: SkillCheckError):
        if error.status_code >= 500:
            logger.error(f"{error.__class__.__name__}: {error.message} (reason={error.reason})")
        else:
            logger.warning(f"{error.__class__.__name__}: {error.message} (reason={error.reason})")

        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        """Werkzeug errors (404 for unknown routes, 405, malformed JSON...)."""
        return error_response(
            error.description or error.name,
            error.code,
            reason=error.name.lower().replace(" ", "_"),
        )

    @app.errorhandler(Exception)
    def handle_generic_error(error):
        logger.error(f"Unhandled error on {request.method} {request.path}: {error}")
        logger.error(traceback.format_exc())
        return error_response("An unexpected error occurred", 500, reason="internal_error")


def register_request_logging(app: Flask) -> None:
    """Log method, path, status and duration of every request."""

    @app.before_request
    def log_request_start():
        request.start_time = time.time()
        if request.endpoint and not request.endpoint.startswith('static'):
            logger.debug(f"→ {request.method} {request.path}")

    @app.after_request
    def log_request_end(response):
        if hasattr(request, 'start_time'):
            duration_ms = int((time.time() - request.start_time) * 1000)
            if request.endpoint and not request.endpoint.startswith('static'):
                logger.info(
                    f"← {request.method} {request.path} "
                    f"→ {response.status_code} ({duration_ms}ms)"
                )
        return response


def register_all_middleware(app: Flask, enable_logging: bool = True) -> None:
    """Register error handlers and (optionally) request logging."""
    register_error_handlers(app)
    if enable_logging:
        register_request_logging(app)
