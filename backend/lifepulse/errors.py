"""
Error types raised by the matching and request workflow, and their JSON rendering.
"""
import logging
from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class LifePulseError(Exception):
    """Base class for errors that map onto an HTTP response."""
    code = 'ServerError'
    status_code = 500

    def __init__(self, message=None, details=None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self):
        data = {'error': self.code, 'message': self.message}
        if self.details:
            data['details'] = self.details
        return data


class BadInput(LifePulseError):
    code = 'BadInput'
    status_code = 400


class Forbidden(LifePulseError):
    code = 'Forbidden'
    status_code = 403


class NotFound(LifePulseError):
    code = 'NotFound'
    status_code = 404


class DonorNotFound(NotFound):
    code = 'DonorNotFound'


class DuplicateAcceptance(LifePulseError):
    code = 'DuplicateAcceptance'
    status_code = 409


class CapacityExceeded(LifePulseError):
    code = 'CapacityExceeded'
    status_code = 409


class InvalidTransition(LifePulseError):
    code = 'InvalidTransition'
    status_code = 409


class ConcurrentUpdate(LifePulseError):
    """The request row changed between read and conditional write."""
    code = 'ConcurrentUpdate'
    status_code = 409


class BackendUnavailable(LifePulseError):
    """Push backend is not configured or cannot be reached."""
    code = 'BackendUnavailable'
    status_code = 503


def register_error_handlers(app):
    """Render LifePulseError and database failures as JSON."""
    from lifepulse import db

    @app.errorhandler(LifePulseError)
    def handle_lifepulse_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        db.session.rollback()
        logger.error('Database error: %s', error, exc_info=True)
        return jsonify({'error': 'ServerError', 'message': 'Database error'}), 500

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({'error': 'NotFound', 'message': 'Resource not found'}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return jsonify({'error': 'MethodNotAllowed'}), 405
