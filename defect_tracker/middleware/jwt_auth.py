"""
JWT Auth Middleware — resolves the Bearer token into ``g.current_user``.

The before_request hook never rejects a request by itself; it records
either the identity (``{"id", "username", "role"}``) or the reason the
token was refused.  Routes opt in to authentication with ``@require_auth``
(401) and to role checks with ``@require_role`` (403).
"""

import functools
import logging

from flask import g, request

from defect_tracker.core.exceptions import UnauthenticatedError
from defect_tracker.services.auth_service import verify
from defect_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip token resolution entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.auth_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header:
            return
        if not auth_header.startswith("Bearer "):
            g.auth_error = "Authorization header must use the Bearer scheme"
            return

        try:
            g.current_user = verify(auth_header[7:].strip())
        except UnauthenticatedError as exc:
            g.auth_error = str(exc)
            logger.info("Rejected token on %s %s: %s", request.method, path, exc)


def current_identity():
    return getattr(g, "current_user", None)


def require_auth(f):
    """Decorator: reject the request with 401 unless a valid token was presented."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_identity() is None:
            message = getattr(g, "auth_error", None) or "Authentication required"
            return api_error(E.UNAUTHENTICATED, message)
        return f(*args, **kwargs)
    return decorated
