"""
Engine error taxonomy and the Flask handlers that render it.

Services raise these; routes never build error tuples for business rules.
Every mutation runs inside ``database.atomic()`` so a raised error always
means nothing was written.
"""
import logging

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class EngineError(Exception):
    """Base class for structured, caller-facing rejections."""
    status_code = 500
    code = 'engine_error'

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        data = {
            'success': False,
            'error': self.code,
            'message': self.message,
        }
        if self.details:
            data['details'] = self.details
        return data


class ValidationError(EngineError):
    """Missing or malformed input. Raised before any mutation."""
    status_code = 400
    code = 'validation_error'


class NotFoundOrUnauthorized(EngineError):
    """Entity does not exist or the caller may not touch it."""
    status_code = 404
    code = 'not_found'


class ConflictError(EngineError):
    """Request is well formed but conflicts with current state."""
    status_code = 409
    code = 'conflict'


def register_error_handlers(app):
    """Attach JSON error handlers to the application."""

    @app.errorhandler(EngineError)
    def handle_engine_error(err):
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(err):
        logger.exception('Unhandled database error')
        return jsonify({
            'success': False,
            'error': 'internal_error',
            'message': 'The request could not be completed',
        }), 500

    @app.errorhandler(429)
    def ratelimit_handler(e):
        # Retry-After header is set by Flask-Limiter; read it back.
        retry_after = dict(e.get_headers()).get('Retry-After') if hasattr(e, 'get_headers') else None
        retry_after_seconds = int(retry_after) if retry_after else 60
        return jsonify({
            'success': False,
            'error': 'rate_limited',
            'message': 'Too many requests. Please try again later.',
            'retry_after': retry_after_seconds,
        }), 429
