"""JSON bodies for the evaluation routes.

Success bodies are the service payload plus ``"success": true``; payload keys
sit at the top level so clients read ``attempt_id`` rather than
``data.attempt_id``. Error bodies carry ``error`` (human text) and ``reason``
(stable machine code).

Usage:
    return success_response({"attempt_id": attempt_id, "status": "in_progress"}, 201)
    return error_response("Attempt not found", 404, reason="attempt_not_found")
"""

from flask import jsonify
from typing import Any, Dict, Optional, Tuple


def success_response(payload: Optional[Dict[str, Any]] = None, status_code: int = 200) -> Tuple:
    body = {"success": True}
    body.update(payload or {})
    return jsonify(body), status_code


def error_response(
    message: str,
    code: int = 500,
    reason: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> Tuple:
    body: Dict[str, Any] = {"success": False, "error": message}
    if reason:
        body["reason"] = reason
    if details:
        body["details"] = details
    return jsonify(body), code
