"""
Application-wide exception hierarchy.

Services raise these types; the app-level handlers registered in
``defect_tracker.blueprints.register_error_handlers`` map each one to a
stable error code and HTTP status, so blueprints never translate errors
by hand.

Usage:
    from defect_tracker.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Defect", resource_id=42)
    raise ValidationError("title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested or referenced entity does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Assignee").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is missing or malformed (user-correctable).

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
        required: True when the failure is a missing mandatory field.
    """

    def __init__(self, message: str, details: dict | None = None, required: bool = False) -> None:
        self.details = details or {}
        self.required = required
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique key.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class InvalidTransitionError(Exception):
    """Raised when a defect status change is not allowed by the lifecycle table."""

    def __init__(self, from_status: str, to_status: str, allowed: list[str] | None = None) -> None:
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = allowed or []
        super().__init__(f"Invalid status transition from {from_status} to {to_status}")


class UnauthenticatedError(Exception):
    """Raised when a session token is missing, malformed, expired or orphaned."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class AuthenticationFailedError(Exception):
    """Raised on bad login credentials.

    The message is deliberately identical for unknown users and wrong
    passwords.
    """

    def __init__(self) -> None:
        super().__init__("Authentication failed")


class ForbiddenError(Exception):
    """Raised when an authenticated user may not act on a specific resource."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message)
