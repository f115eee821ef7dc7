"""Evaluation API routes.

This module provides REST endpoints for:
- Attempts: create, list, details (with the next question), pause
- Answers: submit an answer without revealing correctness
- Results: full breakdown once an attempt is completed
- Integrity repair: fix (counter drift) and recover (missing slots)
- Development: reset the caller's attempts

Domain errors propagate to the middleware, which renders them as JSON with a
status code and ``reason``.
"""

import logging
from flask import request

from ..core.decorators import require_user
from ..core.exceptions import ValidationError
from ..core.response import success_response

logger = logging.getLogger(__name__)


def create_evaluate_routes(app, attempt_service, results_service):
    """Create Evaluation API routes.

    Args:
        app: Flask application instance
        attempt_service: AttemptService instance
        results_service: ResultsService instance
    """

    @app.route('/api/evaluate/attempts', methods=['POST'])
    @require_user
    def create_attempt():
        """Start a new attempt.

        Response JSON (201):
            {
                "success": true,
                "attempt_id": "uuid",
                "total_questions": 60,
                "status": "in_progress"
            }
        """
        result = attempt_service.create_attempt(request.user_id)
        return success_response(result, 201)

    @app.route('/api/evaluate/attempts', methods=['GET'])
    @require_user
    def list_attempts():
        """List the caller's attempts, newest first.

        Query params:
            status: in_progress | completed (optional)
            limit: 1..100 (default 10)
        """
        limit = request.args.get('limit')
        if limit is not None:
            try:
                limit = int(limit)
            except ValueError:
                raise ValidationError("limit must be an integer", details={"field": "limit"})

        attempts = attempt_service.list_attempts(
            request.user_id,
            status=request.args.get('status') or None,
            limit=limit,
        )
        return success_response({"attempts": attempts})

    @app.route('/api/evaluate/attempts/<attempt_id>', methods=['GET'])
    @require_user
    def get_attempt(attempt_id):
        """Attempt state and the question to answer next.

        Response JSON:
            {
                "success": true,
                "attempt": {"id", "status", "questions_answered", "total_questions", ...},
                "next_question": {"id", "question_order", "question", "options", "code", "metadata"} | null
            }
        """
        details = attempt_service.get_details(attempt_id, request.user_id)
        return success_response(details)

    @app.route('/api/evaluate/attempts/<attempt_id>', methods=['PATCH'])
    @require_user
    def pause_attempt(attempt_id):
        """Pause an attempt.

        Request JSON:
            {"action": "pause"}
        """
        data = request.get_json(silent=True) or {}
        result = attempt_service.pause(attempt_id, request.user_id, data.get('action'))
        return success_response(result)

    @app.route('/api/evaluate/attempts/<attempt_id>/answer', methods=['POST'])
    @require_user
    def submit_answer(attempt_id):
        """Record an answer.

        Request JSON:
            {
                "question_id": "uuid",
                "user_answer_index": 0,  # 0..3
                "time_spent_seconds": 42  # Optional
            }

        Response JSON:
            {
                "success": true,
                "recorded": true,
                "progress": {"questions_answered": 12, "total_questions": 60, "is_complete": false}
            }
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        result = attempt_service.submit_answer(attempt_id, request.user_id, data)
        return success_response(result)

    @app.route('/api/evaluate/attempts/<attempt_id>/results', methods=['GET'])
    @require_user
    def get_results(attempt_id):
        """Score, breakdowns, weak areas and the question review."""
        results = results_service.get_results(attempt_id, request.user_id)
        return success_response(results)

    @app.route('/api/evaluate/attempts/<attempt_id>/fix', methods=['POST'])
    @require_user
    def fix_attempt(attempt_id):
        """Reopen a completed attempt whose assigned rows fall short."""
        result = attempt_service.fix_attempt(attempt_id, request.user_id)
        return success_response(result)

    @app.route('/api/evaluate/attempts/<attempt_id>/recover', methods=['POST'])
    @require_user
    def recover_attempt(attempt_id):
        """Backfill missing slots of a completed attempt."""
        result = attempt_service.recover_attempt(attempt_id, request.user_id)
        return success_response(result)

    @app.route('/api/evaluate/attempts/reset', methods=['POST'])
    @require_user
    def reset_attempts():
        """Delete every attempt of the caller (development only)."""
        result = attempt_service.reset_attempts(request.user_id)
        logger.warning(f"Attempts reset for user {request.user_id}")
        return success_response(result)
