"""API route modules."""

from .evaluate import create_evaluate_routes

__all__ = [
    'create_evaluate_routes',
]
