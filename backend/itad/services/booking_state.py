# Overview: Booking status machine; validates and applies booking transitions.

"""
Booking lifecycle.

STATE MACHINE:
    created -> scheduled -> collected -> sanitised -> graded -> completed

    created:    Booking requested, no driver yet
    scheduled:  Driver assigned, job exists
    collected:  Assets picked up from site
    sanitised:  Data wiped / destroyed
    graded:     Resale grades recorded
    completed:  Approved; TERMINAL

    cancelled is reachable from every non-terminal state and is TERMINAL.

RULES:
1. Cannot skip states (created -> collected is forbidden)
2. Cannot move backwards
3. Terminal states accept nothing, not even a same-status no-op
4. Each *_at timestamp is written once, the first time its status is reached

This module only mutates the Booking object it is handed. Locking, the
completion gate and job synchronisation belong to lifecycle_service.
"""

from __future__ import annotations

from typing import Literal

from ..errors import InvalidTransition, ValidationError
from ..time_utils import utcnow


BookingStatus = Literal["created", "scheduled", "collected", "sanitised", "graded", "completed", "cancelled"]

LIFECYCLE_ORDER = ("created", "scheduled", "collected", "sanitised", "graded", "completed")
VALID_STATUSES = set(LIFECYCLE_ORDER) | {"cancelled"}
TERMINAL_STATUSES = {"completed", "cancelled"}

TRANSITIONS: dict[str, set[str]] = {
    "created": {"scheduled"},
    "scheduled": {"collected"},
    "collected": {"sanitised"},
    "sanitised": {"graded"},
    "graded": {"completed"},
    "completed": set(),
    "cancelled": set(),
}

TIMESTAMP_FIELDS = {
    "scheduled": "scheduled_at",
    "collected": "collected_at",
    "sanitised": "sanitised_at",
    "graded": "graded_at",
    "completed": "completed_at",
    "cancelled": "cancelled_at",
}


def validate_status(status: str) -> None:
    if not isinstance(status, str) or status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid booking status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def next_statuses(current: str) -> list[str]:
    validate_status(current)
    allowed = [s for s in LIFECYCLE_ORDER if s in TRANSITIONS[current]]
    if not is_terminal(current):
        allowed.append("cancelled")
    return allowed


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return to_status in next_statuses(from_status)


def transition(booking, target_status: str, notes: str | None = None):
    """
    Move `booking` to `target_status`.

    Raises:
        ValidationError: target is not a booking status
        InvalidTransition: target not reachable from the current status
    """
    validate_status(target_status)
    current = booking.status

    if not can_transition(current, target_status):
        raise InvalidTransition(
            f"Cannot move booking {booking.booking_number} from '{current}' to '{target_status}'",
            current_status=current,
            target_status=target_status,
        )

    booking.status = target_status

    field = TIMESTAMP_FIELDS.get(target_status)
    if field and getattr(booking, field) is None:
        setattr(booking, field, utcnow())

    if target_status == "cancelled":
        booking.cancellation_notes = notes

    return booking
