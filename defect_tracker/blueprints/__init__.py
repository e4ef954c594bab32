"""
Defect Tracker
Blueprint registry and app-level error handlers.
"""

import logging

from flask import current_app, request
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from defect_tracker.core.exceptions import (
    AuthenticationFailedError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from defect_tracker.models import db
from defect_tracker.utils.errors import E, api_error
from defect_tracker.utils.helpers import DEFAULT_PAGE_SIZE, parse_int

logger = logging.getLogger(__name__)

_HTTP_CODES = {
    401: E.UNAUTHENTICATED,
    403: E.FORBIDDEN,
    404: E.NOT_FOUND,
    413: E.PAYLOAD_TOO_LARGE,
    429: E.RATE_LIMITED,
}


def page_args():
    """Read ``page`` / ``limit`` from the query string (defaults 1 / 20)."""
    return (
        parse_int(request.args.get("page"), 1),
        parse_int(request.args.get("limit"), DEFAULT_PAGE_SIZE),
    )


def json_body():
    """Parsed JSON object body; an empty or unparsable body reads as ``{}``."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", details={"body": "invalid"})
    return data


def register_error_handlers(app):
    """Map the service exception hierarchy to JSON error responses."""

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        code = E.VALIDATION_REQUIRED if error.required else E.VALIDATION_INVALID
        return api_error(code, str(error), details=error.details)

    @app.errorhandler(InvalidTransitionError)
    def _handle_transition(error: InvalidTransitionError):
        return api_error(
            E.INVALID_TRANSITION,
            str(error),
            details={"from": error.from_status, "to": error.to_status, "allowed": error.allowed},
        )

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @app.errorhandler(UnauthenticatedError)
    def _handle_unauthenticated(error: UnauthenticatedError):
        return api_error(E.UNAUTHENTICATED, str(error))

    @app.errorhandler(AuthenticationFailedError)
    def _handle_auth_failed(error: AuthenticationFailedError):
        return api_error(E.AUTH_FAILED, str(error))

    @app.errorhandler(ForbiddenError)
    def _handle_forbidden(error: ForbiddenError):
        return api_error(E.FORBIDDEN, str(error))

    @app.errorhandler(RequestEntityTooLarge)
    def _handle_too_large(error):
        return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large")

    @app.errorhandler(HTTPException)
    def _handle_http(error: HTTPException):
        code = _HTTP_CODES.get(error.code, E.VALIDATION_INVALID)
        message = error.description if error.code != 404 else "Not found"
        return api_error(code, message, status=error.code)

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        db.session.rollback()
        logger.exception("Unexpected error on %s %s endpoint=%s",
                         request.method, request.path, request.endpoint)
        details = {"exception": repr(error)} if current_app.config.get("DEBUG") else None
        return api_error(E.INTERNAL, "Internal server error", details=details)
