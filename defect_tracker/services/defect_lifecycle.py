"""
Defect lifecycle — status transition rules.

    new          → in_progress, cancelled
    in_progress  → review, new, cancelled
    review       → closed, in_progress
    closed       → (terminal)
    cancelled    → (terminal)

Staying in the same status is always allowed.  Closing a defect stamps
``resolved_at`` the first time; the timestamp is never cleared.

Usage:
    from defect_tracker.services.defect_lifecycle import apply_transition

    apply_transition(defect, "review")
"""

from datetime import UTC, datetime

from defect_tracker.core.exceptions import InvalidTransitionError
from defect_tracker.models.defect import DEFECT_TRANSITIONS, TERMINAL_STATUSES


def can_transition(from_status: str, to_status: str) -> bool:
    """Return True when ``to_status`` is reachable from ``from_status``."""
    if not from_status or not to_status:
        return False
    if from_status not in DEFECT_TRANSITIONS or to_status not in DEFECT_TRANSITIONS:
        return False
    if from_status == to_status:
        return True
    return to_status in DEFECT_TRANSITIONS[from_status]


def allowed_transitions(status: str) -> list[str]:
    return sorted(DEFECT_TRANSITIONS.get(status, ()))


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def apply_transition(defect, to_status: str, now: datetime | None = None):
    """Move ``defect`` to ``to_status`` or raise InvalidTransitionError.

    The defect is left untouched when the transition is rejected.
    """
    from_status = defect.status
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status, allowed_transitions(from_status))

    defect.status = to_status
    if to_status == "closed" and defect.resolved_at is None:
        defect.resolved_at = now or datetime.now(UTC)
    return defect
