"""
Permission Decorators — role checks for route protection.

Usage:
    @bp.route("/defects/<int:defect_id>", methods=["DELETE"])
    @require_role("defect.delete")
    def delete_defect(defect_id):
        ...

``require_role`` implies ``require_auth``: a missing or bad token is a 401,
an authenticated user without the role is a 403.
"""

import functools
import logging

from flask import g

from defect_tracker.middleware.jwt_auth import current_identity
from defect_tracker.services.access_policy import can_perform, required_roles
from defect_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_role(action: str):
    """
    Decorator: require the authenticated user's role to be allowed ``action``.

    Args:
        action: Key of ``access_policy.ACTION_ROLES``, e.g. "defect.update"
    """
    roles = required_roles(action)

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            identity = current_identity()
            if identity is None:
                message = getattr(g, "auth_error", None) or "Authentication required"
                return api_error(E.UNAUTHENTICATED, message)

            if not can_perform(identity["role"], action):
                logger.warning(
                    "User %d (%s) denied: action '%s' on %s",
                    identity["id"], identity["role"], action, f.__name__,
                )
                return api_error(
                    E.FORBIDDEN,
                    "Insufficient permissions",
                    details={"required_roles": sorted(roles)},
                )

            return f(*args, **kwargs)
        return decorated
    return decorator
