from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError as SchemaValidationError
import logging

from services.errors import AuthError, Unexpected

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
}


def error_response(error: str, message: str, status: int, details: dict | None = None):
    payload = {"success": False, "error": error, "message": message, "status": status}
    if details:
        payload["details"] = details
    return jsonify(payload), status


def _debug() -> bool:
    return bool(current_app and current_app.debug)


def register_error_handlers(app):
    # Session core errors carry their own status and client-safe message
    @app.errorhandler(AuthError)
    def handle_auth_error(err: AuthError):
        details = None
        if err.status >= 500:
            logger.error("%s: %s", err.code, err, exc_info=err)
            if _debug() and err.__cause__ is not None:
                cause = err.__cause__
                details = {"type": cause.__class__.__name__, "message": str(cause)}
        return error_response(err.code, err.message, err.status, details=details)

    # Marshmallow validation errors map to 422
    @app.errorhandler(SchemaValidationError)
    def handle_validation_error(err: SchemaValidationError):
        # err.messages contains field-level details
        return error_response("VALIDATION_ERROR", "Invalid input", 422, details=err.messages)

    # Werkzeug HTTPExceptions map to their status codes
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = err.code or 500
        return error_response(HTTP_ERROR_CODES.get(status, "HTTP_ERROR"), err.description, status)

    # 500 Internal Error (catch-all)
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        logger.exception("Unhandled exception", exc_info=err)
        details = None
        # In dev, include exception details to speed up debugging
        if _debug():
            details = {"type": err.__class__.__name__, "message": str(err)}
        opaque = Unexpected()
        return error_response(opaque.code, opaque.message, opaque.status, details=details)
