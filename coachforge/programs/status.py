"""Generated program status machine."""

from coachforge.core.errors import InvalidStateError

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "generating": frozenset({"generated", "archived"}),
    "generated": frozenset({"reviewed", "archived"}),
    "reviewed": frozenset({"approved", "rejected", "archived"}),
    "approved": frozenset({"applied", "archived"}),
    "rejected": frozenset({"archived"}),
    "applied": frozenset({"archived"}),
    "archived": frozenset(),
}

EDITABLE_STATUSES = frozenset({"generated", "reviewed", "approved"})


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, target: str) -> None:
    """Raise InvalidStateError unless current -> target is allowed."""
    if not can_transition(current, target):
        raise InvalidStateError(f"Cannot move program from '{current}' to '{target}'")


def ensure_editable(status: str) -> None:
    if status not in EDITABLE_STATUSES:
        raise InvalidStateError(f"Program in status '{status}' cannot be edited")
