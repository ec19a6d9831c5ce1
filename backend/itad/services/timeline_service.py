# Overview: Service-layer operations for the lifecycle timeline (append-only audit log).

"""
Timeline invariants

- Append-only: events are never updated or deleted.
- No domain logic here; callers decide what happened.
- Events are written inside the same DB transaction as the change they record.
"""

from __future__ import annotations

from typing import Optional

from ..errors import NotFound
from ..extensions import db
from ..models import Booking, LifecycleEvent
from ..time_utils import utcnow


def append_lifecycle_event(
    *,
    booking_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    job_id: int | None = None,
    from_status: str | None = None,
    to_status: str | None = None,
    actor: str | None = None,
    note: Optional[str] = None,
) -> LifecycleEvent:
    ev = LifecycleEvent(
        booking_id=booking_id,
        job_id=job_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        from_status=from_status,
        to_status=to_status,
        actor=actor,
        note=note[:255] if note else None,
        occurred_at=utcnow(),
    )
    db.session.add(ev)
    return ev


def get_booking_timeline(booking_id: int) -> list[LifecycleEvent]:
    if db.session.query(Booking.id).filter_by(id=booking_id).scalar() is None:
        raise NotFound(f"Booking {booking_id} not found")

    return (
        db.session.query(LifecycleEvent)
        .filter_by(booking_id=booking_id)
        .order_by(LifecycleEvent.occurred_at.asc(), LifecycleEvent.id.asc())
        .all()
    )
