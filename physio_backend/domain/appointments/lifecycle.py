"""Appointment status machine"""

PENDING = "pending"
CONFIRMED = "confirmed"
REJECTED = "rejected"
IN_PROGRESS = "in-progress"
COMPLETED = "completed"
CANCELLED = "cancelled"

ALL_STATUSES = (PENDING, CONFIRMED, REJECTED, IN_PROGRESS, COMPLETED, CANCELLED)
TERMINAL_STATUSES = frozenset({REJECTED, COMPLETED, CANCELLED})

# Decisions a physiotherapist can take on a pending request
RESPONSE_DECISIONS = (CONFIRMED, REJECTED)
# Statuses reachable through a progress update
PROGRESS_STATUSES = (IN_PROGRESS, COMPLETED, CANCELLED)
# Statuses a cancellation may start from
CANCELLABLE_STATUSES = (PENDING, CONFIRMED)

TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({CONFIRMED, REJECTED, CANCELLED}),
    CONFIRMED: frozenset({IN_PROGRESS, COMPLETED, CANCELLED}),
    IN_PROGRESS: frozenset({COMPLETED, CANCELLED}),
    REJECTED: frozenset(),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())
