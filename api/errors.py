from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError
import logging

from services.exceptions import AuthError, STORE_ERRORS, StoreUnavailable

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHENTICATED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
}


def error_response(error: str, message: str, status: int, details: dict | None = None):
    payload = {"error": error, "message": message, "status": status}
    if details:
        payload["details"] = details
    response = jsonify(payload)
    response.status_code = status
    if status == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


def register_error_handlers(app):
    # Auth taxonomy: one generic message per class, never the underlying reason
    @app.errorhandler(AuthError)
    def handle_auth_error(err: AuthError):
        if isinstance(err, StoreUnavailable):
            logger.error("credential store unavailable: %r", err.__cause__)
        return error_response(err.code, err.message, err.status)

    # Connectivity failures that escaped the services
    for exc_class in STORE_ERRORS:
        @app.errorhandler(exc_class)
        def handle_store_error(err):
            logger.error("database error: %s", err.__class__.__name__)
            store_err = StoreUnavailable()
            return error_response(store_err.code, store_err.message, store_err.status)

    # Marshmallow validation errors map to 422
    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        return error_response("VALIDATION_ERROR", "Invalid input", 422, details=err.messages)

    # Integrity errors that were not turned into a domain error
    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err: IntegrityError):
        if current_app and current_app.debug:
            logging.exception("Unhandled exception", exc_info=err)
        return error_response("CONFLICT", "Unique constraint violated.", 409)

    # Werkzeug HTTPExceptions (abort(...)) map to their status codes
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = err.code or 400
        return error_response(HTTP_ERROR_CODES.get(status, "HTTP_ERROR"), err.description, status)

    # 500 Internal Error (catch-all)
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        logging.exception("Unhandled exception", exc_info=err)
        details = None
        # In dev, include exception details to speed up debugging
        if current_app and current_app.debug:
            details = {"type": err.__class__.__name__, "message": str(err)}
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500, details=details)
