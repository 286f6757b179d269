"""API error types and their JSON rendering."""

from __future__ import annotations

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException


class ApiError(HTTPException):
    """HTTP error carrying a stable machine-readable ``error_code``.

    ``code`` is the HTTP status (werkzeug convention); ``error_code`` is what
    clients branch on.
    """

    code = 400
    error_code = "BAD_REQUEST"

    def __init__(self, description: str | None = None, error_code: str | None = None) -> None:
        super().__init__(description=description)
        if error_code is not None:
            self.error_code = error_code


class ValidationError(ApiError):
    code = 400
    error_code = "VALIDATION_ERROR"


class PolicyViolation(ApiError):
    code = 400
    error_code = "POLICY_VIOLATION"


class InvalidTransition(ApiError):
    code = 400
    error_code = "INVALID_TRANSITION"


class Unauthorized(ApiError):
    code = 401
    error_code = "UNAUTHORIZED"


class Forbidden(ApiError):
    code = 403
    error_code = "FORBIDDEN"


class NotFound(ApiError):
    code = 404
    error_code = "NOT_FOUND"


class Conflict(ApiError):
    code = 409
    error_code = "CONFLICT"


def _error_code_for(exc: HTTPException) -> str:
    error_code = getattr(exc, "error_code", None)
    if error_code:
        return error_code
    return (exc.name or "error").upper().replace(" ", "_")


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        return jsonify(message=exc.description, code=_error_code_for(exc)), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_exception(exc: Exception):
        current_app.logger.exception("Unhandled error: %s", exc.__class__.__name__)
        return jsonify(message="Error interno del servidor", code="INTERNAL_ERROR"), 500
