"""
Auth service — registration, login and token verification.

Login failures are indistinguishable: an unknown username and a wrong
password both raise AuthenticationFailedError with the same message.
"""

import logging

import jwt

from defect_tracker.core.exceptions import (
    AuthenticationFailedError,
    ConflictError,
    UnauthenticatedError,
    ValidationError,
)
from defect_tracker.models import db
from defect_tracker.models.auth import DEFAULT_ROLE, USER_ROLES, User
from defect_tracker.services import jwt_service
from defect_tracker.utils.crypto import (
    BCRYPT_MAX_PASSWORD_BYTES,
    hash_password,
    password_too_long,
    verify_password,
)

logger = logging.getLogger(__name__)

USERNAME_MAX_LENGTH = 100


def register(username, password, role=None, log=None):
    """Create a user account (flushed, not committed).

    Unknown or missing roles fall back to ``observer``.

    Raises:
        ValidationError: username or password missing, or password too long.
        ConflictError: username already taken.
    """
    log = log or logger
    username = (username or "").strip() if isinstance(username, str) else ""
    if not username or not password or not isinstance(password, str):
        raise ValidationError(
            "username and password are required",
            details={"username": "required", "password": "required"},
            required=True,
        )
    if len(username) > USERNAME_MAX_LENGTH:
        raise ValidationError(f"username must be at most {USERNAME_MAX_LENGTH} characters")
    if password_too_long(password):
        raise ValidationError(
            f"password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes",
            details={"password": "length"},
        )

    if User.query.filter_by(username=username).first() is not None:
        raise ConflictError(resource="User", field="username", value=username)

    if role not in USER_ROLES:
        role = DEFAULT_ROLE

    user = User(username=username, password_hash=hash_password(password), role=role)
    db.session.add(user)
    db.session.flush()
    log.info("User registered: id=%s username=%s role=%s", user.id, username, role)
    return user


def login(username, password, log=None):
    """Check credentials and return ``(user, token_dict)``.

    Raises:
        AuthenticationFailedError: unknown user or wrong password.
    """
    log = log or logger
    if not isinstance(username, str) or not isinstance(password, str):
        raise AuthenticationFailedError()

    user = User.query.filter_by(username=username.strip()).first()
    if user is None or not verify_password(password, user.password_hash):
        log.warning("Failed login attempt for username=%s", username)
        raise AuthenticationFailedError()

    log.info("User logged in: id=%s", user.id)
    return user, jwt_service.token_response(user.id, user.role)


def verify(token):
    """Resolve a bearer token to ``{id, username, role}``.

    The role is read from the database, not from the token claims.

    Raises:
        UnauthenticatedError: token missing, malformed, expired, wrong type,
            or the user no longer exists.
    """
    if not token:
        raise UnauthenticatedError()
    try:
        payload = jwt_service.decode_access_token(token)
    except jwt.ExpiredSignatureError as exc:
        raise UnauthenticatedError("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise UnauthenticatedError("Invalid token") from exc

    user = db.session.get(User, payload["sub"])
    if user is None:
        raise UnauthenticatedError("User no longer exists")
    return {"id": user.id, "username": user.username, "role": user.role}
