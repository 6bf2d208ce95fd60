"""
Booking lifecycle state machine.

    requested -> confirmed | rejected | cancelled
    confirmed -> cancelled | completed
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from .exceptions import AlreadyCancelled, InvalidTransition
from .models import Booking, BookingStatus

ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.REQUESTED: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.REJECTED, BookingStatus.CANCELLED}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.REJECTED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(
    booking: Booking,
    target: BookingStatus,
    *,
    at: datetime,
    reason: Optional[str] = None
) -> Booking:
    """
    Return a copy of ``booking`` moved to ``target``.

    Cancelling sets ``deleted_at`` and ``cancel_reason`` as well as the status.

    Raises:
        AlreadyCancelled: If a cancelled booking is cancelled again
        InvalidTransition: For any other move the state machine forbids
    """
    current = booking.status

    if target is BookingStatus.CANCELLED and (
        current is BookingStatus.CANCELLED or booking.deleted_at is not None
    ):
        raise AlreadyCancelled(booking.id)

    if not can_transition(current, target):
        raise InvalidTransition(current.value, target.value)

    changes = {"status": target, "updated_at": at}
    if target is BookingStatus.CANCELLED:
        changes["deleted_at"] = at
        changes["cancel_reason"] = reason

    return replace(booking, **changes)
