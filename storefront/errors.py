"""
Error taxonomy and Flask error handlers for the storefront API
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import newrelic.agent
import pydantic
from flask import jsonify, request
from sqlalchemy.exc import (
    SQLAlchemyError,
    DisconnectionError,
    TimeoutError as SQLTimeoutError,
    IntegrityError,
    OperationalError
)
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """Base class for errors surfaced to API clients"""

    status_code = 500
    error_category = "internal"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **details: Any):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {'error': self.message}
        payload.update(self.details)
        return payload


class ValidationError(StorefrontError):
    status_code = 400
    error_category = "validation"
    default_message = "Invalid request"


class InsufficientStockError(StorefrontError):
    """Cart mutation would exceed the product's current stock"""
    status_code = 400
    error_category = "validation"
    default_message = "Not enough stock available"


class AuthenticationError(StorefrontError):
    status_code = 401
    error_category = "authentication"
    default_message = "Access token required"


class InvalidTokenError(StorefrontError):
    status_code = 403
    error_category = "authentication"
    default_message = "Invalid token"


class ForbiddenError(StorefrontError):
    status_code = 403
    error_category = "authorization"
    default_message = "Admin access required"


class NotFoundError(StorefrontError):
    status_code = 404
    error_category = "not_found"
    default_message = "Not found"


class ProductNotFoundError(NotFoundError):
    default_message = "Product not found"


class OrderNotFoundError(NotFoundError):
    default_message = "Order not found"


class CartLineNotFoundError(NotFoundError):
    default_message = "Cart item not found"


class CategoryNotFoundError(NotFoundError):
    default_message = "Category not found"


class ConflictError(StorefrontError):
    status_code = 409
    error_category = "conflict"
    default_message = "Conflict"


class OutOfStockError(ConflictError):
    """Guarded stock decrement affected no rows"""
    default_message = "Out of stock"


class IdempotencyConflictError(ConflictError):
    default_message = "Idempotency key already used for a different request"


class CategoryInUseError(ConflictError):
    default_message = "Cannot delete category with existing products"


class DuplicateEmailError(ConflictError):
    default_message = "Email already registered"


class OrderPlacementError(StorefrontError):
    """Order transaction failed for a reason that has no specific category"""
    default_message = "Order could not be placed"


class TransientDatabaseError(StorefrontError):
    status_code = 503
    error_category = "transient"
    default_message = "Service temporarily unavailable"


def classify_database_error(error: SQLAlchemyError):
    """Map a stray SQLAlchemy error to (category, message, http_status)"""
    if isinstance(error, DisconnectionError):
        return "connection_lost", "Database connection lost", 503
    if isinstance(error, SQLTimeoutError):
        return "timeout", "Database timed out", 503
    if isinstance(error, IntegrityError):
        return "constraint_violation", "Database constraint violated", 400
    if isinstance(error, OperationalError):
        if "connection" in str(error).lower() or "locked" in str(error).lower():
            return "operational_error", "Database unavailable", 503
        return "operational_error", "Internal server error", 500
    return "database_error", "Internal server error", 500


def _log_structured_error(error: Exception, error_category: str, http_status: int,
                          user_id: Optional[int] = None):
    log = logger.error if http_status >= 500 else logger.warning
    log(f"{type(error).__name__}: {error}", extra={
        'event_type': 'request_error',
        'error_category': error_category,
        'http_status': http_status,
        'user_id': user_id,
        'endpoint': request.endpoint,
        'timestamp': datetime.utcnow().isoformat()
    })
    if http_status >= 500:
        newrelic.agent.notice_error(attributes={
            'error_category': error_category,
            'http_status': http_status
        })


def register_error_handlers(app):
    """Register JSON error handlers on the Flask app"""

    @app.errorhandler(StorefrontError)
    def handle_storefront_error(error):
        _log_structured_error(error, error.error_category, error.status_code)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(pydantic.ValidationError)
    def handle_request_validation_error(error):
        fields = ['.'.join(str(part) for part in e['loc']) for e in error.errors()]
        _log_structured_error(error, "validation", 400)
        return jsonify({'error': 'Invalid request body', 'fields': fields}), 400

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        error_category, message, http_status = classify_database_error(error)
        _log_structured_error(error, error_category, http_status)
        return jsonify({'error': message}), http_status

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({'error': 'Endpoint not found'}), 404

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'error': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception('Unhandled server error', extra={'event_type': 'server_error'})
        newrelic.agent.notice_error()
        return jsonify({'error': 'Internal server error'}), 500
