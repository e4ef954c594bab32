"""
Role-based access policy.

Three fixed roles: manager, engineer, observer.  Each protected action maps
to the set of roles allowed to perform it; an empty set means any
authenticated user.  ``authorize`` is the only place the table is read.
"""

MANAGER = "manager"
ENGINEER = "engineer"
OBSERVER = "observer"

_ANY = frozenset()
_MANAGERS = frozenset({MANAGER})
_WRITERS = frozenset({MANAGER, ENGINEER})

ACTION_ROLES = {
    # Projects
    "project.view": _ANY,
    "project.create": _MANAGERS,
    "project.update": _MANAGERS,
    "project.delete": _MANAGERS,
    # Stages
    "stage.view": _ANY,
    "stage.create": _WRITERS,
    "stage.update": _WRITERS,
    "stage.delete": _MANAGERS,
    # Defects
    "defect.view": _ANY,
    "defect.create": _WRITERS,
    "defect.update": _WRITERS,
    "defect.delete": _MANAGERS,
    # Comments / history
    "comment.view": _ANY,
    "comment.create": _ANY,
    "history.view": _ANY,
    # Attachments
    "attachment.view": _ANY,
    "attachment.upload": _WRITERS,
    "attachment.delete": _ANY,
    # Reports
    "report.view": _ANY,
}


def required_roles(action: str) -> frozenset:
    """Return the roles allowed for ``action``.

    Raises:
        KeyError: for an action missing from ACTION_ROLES.
    """
    return ACTION_ROLES[action]


def authorize(role: str | None, roles) -> bool:
    """True when ``roles`` is empty or contains ``role``."""
    if not roles:
        return True
    return role in roles


def can_perform(role: str | None, action: str) -> bool:
    return authorize(role, required_roles(action))


def can_delete_attachment(identity: dict, attachment) -> bool:
    """Managers may delete any attachment; everyone else only their own uploads."""
    if identity.get("role") == MANAGER:
        return True
    return attachment.uploaded_by == identity.get("id")
