import logging

from flask import jsonify
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException

from .models import MAX_INT

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500

    def __init__(self, message, errors=None, status_code=None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        body = {"message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(ApiError):
    status_code = 400

    @classmethod
    def from_fields(cls, errors):
        return cls("Validation failed", errors=errors)


class FutureDateError(ValidationError):
    pass


class AuthError(ApiError):
    status_code = 401


class NotFound(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409


class ServiceUnavailable(ApiError):
    status_code = 503

    def __init__(self, message="Database is not available. Please try again in a few moments.", retry_after=5):
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self):
        body = super().to_dict()
        body["error"] = "Database connection required"
        body["retryAfter"] = self.retry_after
        return body


def parse_id(raw, label):
    """Turn a path or body identifier into an int, or reject it as malformed."""
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid {label} ID")
    if isinstance(raw, int):
        if 0 < raw <= MAX_INT:
            return raw
        raise ValidationError(f"Invalid {label} ID")
    text = str(raw or "").strip()
    if not (text.isascii() and text.isdigit()) or not 0 < int(text) <= MAX_INT:
        raise ValidationError(f"Invalid {label} ID")
    return int(text)


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        if isinstance(error, ServiceUnavailable):
            response.headers["Retry-After"] = str(error.retry_after)
        return response

    @app.errorhandler(OperationalError)
    def handle_store_unreachable(error):
        logger.error(f"Database unreachable: {str(error)}")
        return handle_api_error(ServiceUnavailable())

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({"message": "Route not found"}), 404

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        if isinstance(error, HTTPException):
            return jsonify({"message": error.description}), error.code
        logger.exception(f"Unhandled error: {str(error)}")
        body = {"message": "Internal server error"}
        if app.config.get("ENVIRONMENT") != "production":
            body["error"] = str(error)
        return jsonify(body), 500
