# gymmawy/errors.py
"""Application exceptions and the JSON error envelope.

Every error leaves the API as::

    {"error": {"message": "...", "code": "...", "details": [...]}}

``details`` is only present for validation failures.
"""
from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException

from .extensions import db, jwt


class ApiError(Exception):
    status = 400
    code = "BAD_REQUEST"

    def __init__(self, message, status=None, code=None, details=None, expose=None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        if code is not None:
            self.code = code
        self.details = details
        self.expose = self.status < 500 if expose is None else expose


class ValidationError(ApiError):
    status = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message="Validation failed", details=None, field=None):
        if field and details is None:
            details = [{"field": field, "message": message}]
        super().__init__(message, details=details)


class Unauthorized(ApiError):
    status = 401
    code = "UNAUTHORIZED"


class Forbidden(ApiError):
    status = 403
    code = "FORBIDDEN"


class NotFound(ApiError):
    status = 404
    code = "NOT_FOUND"


class Conflict(ApiError):
    status = 409
    code = "CONFLICT"


def error_body(message, code, details=None):
    body = {"error": {"message": message, "code": code}}
    if details:
        body["error"]["details"] = details
    return body


def _is_production():
    return (current_app.config.get("ENV") or "").lower() == "production"


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(e):
        db.session.rollback()
        if e.status >= 500:
            current_app.logger.error("api error %s: %s", e.code, e.message)
        message = e.message if e.expose else "Internal server error"
        r = jsonify(error_body(message, e.code, e.details))
        r.status_code = e.status
        return r

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        code = (e.name or "error").upper().replace(" ", "_")
        r = jsonify(error_body(e.description or e.name, code))
        r.status_code = e.code or 500
        return r

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        db.session.rollback()
        current_app.logger.exception("unhandled error: %s", e)
        message = "Internal server error" if _is_production() else str(e) or "Internal server error"
        r = jsonify(error_body(message, "INTERNAL_ERROR"))
        r.status_code = 500
        return r

    # Flask-JWT-Extended answers on its own unless these are overridden
    @jwt.unauthorized_loader
    def _missing_token(reason):
        return jsonify(error_body("Unauthorized", "UNAUTHORIZED")), 401

    @jwt.invalid_token_loader
    def _bad_token(reason):
        return jsonify(error_body("Invalid or expired token", "UNAUTHORIZED")), 401

    @jwt.expired_token_loader
    def _expired_token(jwt_header, jwt_payload):
        return jsonify(error_body("Invalid or expired token", "UNAUTHORIZED")), 401
