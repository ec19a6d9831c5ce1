# Overview: Lifecycle coordinator; orchestrates bookings, jobs, evidence, records and approval.

"""
Booking <-> Job lifecycle coordinator

================================================================================
PURPOSE: Keep a Booking and its Job consistent while both move through
their own state machines, and gate final approval on grading/sanitisation.
================================================================================

FLOW:
    create_booking          booking: created
    assign_driver           booking: created -> scheduled, job created (routed)
    driver steps            job: routed -> en-route -> arrived -> collected -> warehouse
                            (each gated on evidence; job collected => booking collected)
    ops steps               record_sanitisation / verify_sanitisation / record_grade
                            job sanitised/graded => booking sanitised/graded
    approve_booking         gate, then booking + job -> completed

LOCKING (every mutating operation):
1. Lock the booking row, then its job row (always in that order)
2. Bump the booking's version so concurrent operations on the pair conflict
3. Do the work, append timeline events, commit - or roll everything back
4. Lock/version conflicts are retried by run_atomic against fresh state;
   transitions are compare-and-set on the status seen first, so the loser of
   a race gets InvalidTransition instead of being silently re-applied

SYNC (job drives booking):
    job collected  -> booking collected (only from scheduled)
    job sanitised  -> booking sanitised
    job graded     -> booking graded
    job completed  -> booking completed
    job cancelled  -> booking cancelled
    Anything else (routed, en-route, arrived, warehouse) leaves the booking alone.
    A sync target the booking cannot take (already there, or ahead) is a no-op.
================================================================================
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Mapping

from flask import current_app

from ..catalog import FUEL_TYPES, get_category, validate_grade, validate_sanitisation_method
from ..errors import (
    GateNotSatisfied,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from ..extensions import db
from ..models import Booking, BookingAssetLine, Job, JobAsset, SanitisationRecord
from ..time_utils import parse_iso_date, utcnow
from . import booking_state, driver_service, job_state, record_service, value_service
from .concurrency import lock_for_update, run_atomic
from .document_service import BOOKING_DOCUMENT, JOB_DOCUMENT, next_document_number
from .timeline_service import append_lifecycle_event


GRADE_ALLOWED_STATUSES = {"sanitised", "graded", "completed"}
SANITISE_ALLOWED_STATUSES = {"collected", "sanitised", "graded", "completed"}

JOB_TO_BOOKING_SYNC = {
    "collected": "collected",
    "sanitised": "sanitised",
    "graded": "graded",
    "completed": "completed",
    "cancelled": "cancelled",
}

# Booking-side moves an admin can make that the job should follow when it can
BOOKING_TO_JOB_MIRROR = {"sanitised", "graded", "cancelled"}

JOURNEY_FIELDS = (
    "dial_to_collection",
    "security_requirements",
    "id_required",
    "loading_bay_location",
    "vehicle_height_restrictions",
    "door_lift_size",
    "road_works_public_events",
    "manual_handling_requirements",
)
JOURNEY_EDITABLE_STATUSES = {"booked", "routed"}


# =============================================================================
# Locking helpers
# =============================================================================

def _lock_pair(booking_id: int) -> tuple[Booking, Job | None]:
    booking = lock_for_update(db.session.query(Booking).filter_by(id=booking_id)).first()
    if booking is None:
        raise NotFound(f"Booking {booking_id} not found")

    job = None
    if booking.job_id is not None:
        job = lock_for_update(db.session.query(Job).filter_by(id=booking.job_id)).first()

    # Version bump: any other writer to this pair now fails its version check
    booking.updated_at = utcnow()
    return booking, job


def _lock_job_pair(job_id: int) -> tuple[Booking, Job]:
    booking_id = db.session.query(Job.booking_id).filter_by(id=job_id).scalar()
    if booking_id is None:
        raise NotFound(f"Job {job_id} not found")

    booking, job = _lock_pair(booking_id)
    if job is None or job.id != job_id:
        raise NotFound(f"Job {job_id} not found")
    return booking, job


def _expect_unchanged(observed: dict, key: str, current_status: str, label: str, target: str) -> None:
    """
    Compare-and-set guard for retried transitions.

    The first attempt records the status it saw (or the caller's
    expected_status); a retry that finds something else fails.
    """
    expected = observed.setdefault(key, current_status)
    if current_status != expected:
        raise InvalidTransition(
            f"{label} is '{current_status}', not '{expected}'; it was changed by another "
            f"request, so '{target}' was not applied",
            current_status=current_status,
            target_status=target,
        )


def _require_line(booking: Booking, asset_id: str) -> BookingAssetLine:
    line = booking.line_for(asset_id)
    if line is None:
        raise NotFound(f"Booking {booking.booking_number} has no '{asset_id}' asset line")
    return line


def _optional_text(value: Any, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    return value or None


# =============================================================================
# Booking creation
# =============================================================================

def validate_asset_lines(asset_lines: Iterable[Mapping[str, Any]]) -> list[tuple[Any, int]]:
    if not asset_lines:
        raise ValidationError("At least one asset line is required")

    validated = []
    seen = set()
    for raw in asset_lines:
        if not isinstance(raw, Mapping):
            raise ValidationError("Each asset line must be an object")
        category_id = raw.get("category_id", raw.get("categoryId"))
        quantity = raw.get("quantity")

        if not isinstance(category_id, str) or not category_id:
            raise ValidationError("category_id is required on every asset line")
        category = get_category(category_id)

        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError(f"Quantity for '{category_id}' must be an integer")
        if quantity <= 0:
            raise ValidationError(f"Quantity for '{category_id}' must be greater than zero")

        if category_id in seen:
            raise ValidationError(f"Asset category '{category_id}' is listed more than once")
        seen.add(category_id)
        validated.append((category, quantity))
    return validated


def _coordinates(site_info: Mapping[str, Any]) -> tuple[float | None, float | None]:
    lat, lng = site_info.get("lat"), site_info.get("lng")
    if lat is None or lng is None:
        return None, None
    if isinstance(lat, bool) or isinstance(lng, bool):
        raise ValidationError("lat and lng must be numbers")
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        raise ValidationError("lat and lng must be numbers")
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise ValidationError("lat/lng out of range")
    return lat, lng


def _resolve_distance(site_info: Mapping[str, Any], lat: float | None, lng: float | None) -> Decimal | None:
    explicit = site_info.get("round_trip_distance_km")
    if explicit is not None:
        if isinstance(explicit, bool) or not isinstance(explicit, (int, float, Decimal, str)):
            raise ValidationError("round_trip_distance_km must be a number")
        try:
            distance = Decimal(str(explicit))
        except ArithmeticError:
            raise ValidationError("round_trip_distance_km must be a number")
        if not distance.is_finite() or distance < 0:
            raise ValidationError("round_trip_distance_km must be zero or more")
        return distance.quantize(Decimal("0.01"))

    if lat is None or lng is None:
        return None
    return value_service.round_trip_distance_km(lat, lng)


def create_booking(
    site_info: Mapping[str, Any],
    asset_lines: Iterable[Mapping[str, Any]],
    scheduled_date,
    charity_percent: int = 0,
    *,
    client_name: str | None = None,
    preferred_vehicle_type: str | None = None,
    created_by: str | None = None,
) -> Booking:
    """
    Create a booking in 'created' status.

    Args:
        site_info: site_name, address, postcode; optional lat/lng,
            round_trip_distance_km, contact_name, contact_phone
        asset_lines: [{category_id, quantity}, ...] - one line per category
        scheduled_date: date or ISO-8601 string
        charity_percent: 0-100

    Raises:
        ValidationError: malformed input (unknown category, zero quantity, ...)
    """
    if not isinstance(site_info, Mapping):
        raise ValidationError("site_info must be an object")

    site_name = _optional_text(site_info.get("site_name"), "site_name")
    address = _optional_text(site_info.get("address", site_info.get("site_address")), "address")
    postcode = _optional_text(site_info.get("postcode"), "postcode")
    if not site_name:
        raise ValidationError("site_name is required")
    if not address:
        raise ValidationError("address is required")
    if not postcode:
        raise ValidationError("postcode is required")

    lines = validate_asset_lines(list(asset_lines or []))

    if isinstance(scheduled_date, str):
        try:
            scheduled_date = parse_iso_date(scheduled_date)
        except ValueError:
            raise ValidationError("scheduled_date must be an ISO-8601 date")
    if scheduled_date is None or not hasattr(scheduled_date, "isoformat"):
        raise ValidationError("scheduled_date is required")

    if charity_percent is None:
        charity_percent = 0
    if isinstance(charity_percent, bool) or not isinstance(charity_percent, int):
        raise ValidationError("charity_percent must be an integer")
    if not 0 <= charity_percent <= 100:
        raise ValidationError("charity_percent must be between 0 and 100")

    if preferred_vehicle_type is not None and preferred_vehicle_type not in FUEL_TYPES:
        raise ValidationError(f"preferred_vehicle_type must be one of: {', '.join(FUEL_TYPES)}")

    lat, lng = _coordinates(site_info)
    distance_km = _resolve_distance(site_info, lat, lng)
    line_pairs = [{"category_id": c.id, "quantity": q} for c, q in lines]

    def _op():
        booking = Booking(
            booking_number=next_document_number(document_type=BOOKING_DOCUMENT),
            client_name=_optional_text(client_name, "client_name"),
            site_name=site_name,
            site_address=address,
            postcode=postcode.upper(),
            site_lat=lat,
            site_lng=lng,
            contact_name=_optional_text(site_info.get("contact_name"), "contact_name"),
            contact_phone=_optional_text(site_info.get("contact_phone"), "contact_phone"),
            scheduled_date=scheduled_date,
            charity_percent=charity_percent,
            preferred_vehicle_type=preferred_vehicle_type,
            status="created",
            estimated_co2e_kg=value_service.reuse_savings_kg(line_pairs),
            estimated_buyback_pence=value_service.estimate_buyback_pence(line_pairs),
            round_trip_distance_km=distance_km,
            round_trip_distance_miles=value_service.km_to_miles(distance_km) if distance_km is not None else None,
            created_by=created_by,
            updated_at=utcnow(),
        )
        db.session.add(booking)
        db.session.flush()  # Get ID

        for category, quantity in lines:
            db.session.add(BookingAssetLine(
                booking_id=booking.id,
                category_id=category.id,
                category_name=category.name,
                quantity=quantity,
            ))

        append_lifecycle_event(
            booking_id=booking.id,
            event_type="booking.created",
            entity_type="booking",
            entity_id=booking.id,
            to_status="created",
            actor=created_by,
        )
        db.session.flush()
        return booking

    booking = run_atomic(_op)
    current_app.logger.info("Booking %s created (%s asset lines)", booking.booking_number, len(lines))
    return booking


# =============================================================================
# Driver assignment
# =============================================================================

def _create_job(booking: Booking, driver) -> Job:
    fuel_type = driver.vehicle_fuel_type or driver.vehicle_type
    job = Job(
        job_number=next_document_number(document_type=JOB_DOCUMENT),
        booking_id=booking.id,
        status="routed",
        driver_id=driver.id,
        driver_name=driver.name,
        vehicle_reg=driver.vehicle_reg,
        vehicle_type=driver.vehicle_type,
        vehicle_fuel_type=driver.vehicle_fuel_type,
        driver_phone=driver.phone,
        co2e_saved_kg=booking.estimated_co2e_kg,
        travel_emissions_kg=value_service.travel_emissions_kg(booking.round_trip_distance_km, fuel_type),
        buyback_value_pence=booking.estimated_buyback_pence,
        charity_percent=booking.charity_percent,
        round_trip_distance_km=booking.round_trip_distance_km,
        journey_details={},
        updated_at=utcnow(),
    )
    db.session.add(job)
    db.session.flush()  # Get ID

    for line in booking.asset_lines:
        db.session.add(JobAsset(
            job_id=job.id,
            category_id=line.category_id,
            category_name=line.category_name,
            quantity=line.quantity,
        ))
    return job


def assign_driver(booking_id: int, driver_id: int, scheduled_by: str | None = None) -> Booking:
    """
    Schedule a booking by assigning a driver (created -> scheduled).

    Creates the booking's job the first time; a booking that already has a
    job never gets a second one.

    Raises:
        NotFound: booking or (active) driver does not exist
        InvalidTransition: booking is not in 'created' status
    """
    def _op():
        booking, job = _lock_pair(booking_id)

        if booking.status != "created":
            raise InvalidTransition(
                f"Cannot assign a driver to booking {booking.booking_number}: "
                f"current status is '{booking.status}', must be 'created'",
                current_status=booking.status,
                target_status="scheduled",
            )

        driver = driver_service.get_driver(driver_id, active_only=True)

        booking_state.transition(booking, "scheduled")
        booking.driver_id = driver.id
        booking.driver_name = driver.name
        booking.scheduled_by = scheduled_by

        if booking.job_id is None:
            job = _create_job(booking, driver)
            booking.job_id = job.id
            append_lifecycle_event(
                booking_id=booking.id,
                job_id=job.id,
                event_type="job.created",
                entity_type="job",
                entity_id=job.id,
                to_status=job.status,
                actor=scheduled_by,
                note=f"Driver {driver.name} ({driver.vehicle_reg})",
            )

        append_lifecycle_event(
            booking_id=booking.id,
            job_id=booking.job_id,
            event_type="booking.scheduled",
            entity_type="booking",
            entity_id=booking.id,
            from_status="created",
            to_status="scheduled",
            actor=scheduled_by,
        )
        return booking

    booking = run_atomic(_op)
    current_app.logger.info(
        "Booking %s scheduled with driver %s (job %s)",
        booking.booking_number, booking.driver_id, booking.job_id,
    )
    return booking


# =============================================================================
# Job transitions and evidence
# =============================================================================

def sync_from_job_status(job: Job, booking: Booking, actor: str | None = None) -> str | None:
    """
    Mirror the job's new status onto its booking. Returns the booking status
    applied, or None when the job status has no booking-side effect.
    Caller holds the pair lock.
    """
    target = JOB_TO_BOOKING_SYNC.get(job.status)
    if target is None:
        return None

    if job.status == "collected" and booking.status != "scheduled":
        current_app.logger.info(
            "Job %s collected; booking %s is '%s', not synced",
            job.job_number, booking.booking_number, booking.status,
        )
        return None

    if booking.status == target or not booking_state.can_transition(booking.status, target):
        current_app.logger.info(
            "Job %s is '%s'; booking %s stays '%s'",
            job.job_number, job.status, booking.booking_number, booking.status,
        )
        return None

    from_status = booking.status
    notes = f"Cancelled with job {job.job_number}" if target == "cancelled" else None
    booking_state.transition(booking, target, notes=notes)
    if target == "completed":
        booking.completed_by = actor

    append_lifecycle_event(
        booking_id=booking.id,
        job_id=job.id,
        event_type=f"booking.{target}",
        entity_type="booking",
        entity_id=booking.id,
        from_status=from_status,
        to_status=target,
        actor=actor,
        note=f"Synced from job {job.job_number}",
    )
    return target


def _require_job_transition(job: Job, target_status: str) -> None:
    if not job_state.can_transition(job.status, target_status):
        raise InvalidTransition(
            f"Cannot move job {job.job_number} from '{job.status}' to '{target_status}'",
            current_status=job.status,
            target_status=target_status,
        )


def _require_gate(booking: Booking) -> dict:
    completion = record_service.completion_counts(booking)
    if not completion["ready"]:
        raise GateNotSatisfied(
            f"Booking {booking.booking_number} is not ready for approval: "
            f"{completion['graded']}/{completion['total']} graded, "
            f"{completion['sanitised']}/{completion['total']} sanitised, "
            f"{completion['verified']}/{completion['total']} verified",
            completion=completion,
        )
    return completion


def _apply_job_transition(booking: Booking, job: Job, target_status: str, actor: str | None) -> None:
    _require_job_transition(job, target_status)
    if target_status == "completed":
        _require_gate(booking)

    from_status = job.status
    job_state.transition(job, target_status)
    job.updated_at = utcnow()

    append_lifecycle_event(
        booking_id=booking.id,
        job_id=job.id,
        event_type=f"job.{target_status}",
        entity_type="job",
        entity_id=job.id,
        from_status=from_status,
        to_status=target_status,
        actor=actor,
    )
    sync_from_job_status(job, booking, actor)


def _record_evidence(booking: Booking, job: Job, status: str, fields: dict, actor: str | None) -> None:
    entry = job_state.submit_evidence(job, status, **fields)
    job.updated_at = utcnow()
    append_lifecycle_event(
        booking_id=booking.id,
        job_id=job.id,
        event_type="evidence.submitted",
        entity_type="evidence",
        entity_id=entry.id,
        to_status=entry.status,
        actor=actor,
        note=f"{len(entry.photos)} photo(s), seals: {', '.join(entry.seal_numbers) or 'none'}",
    )


def transition_job_status(
    job_id: int,
    target_status: str,
    *,
    actor: str | None = None,
    expected_status: str | None = None,
) -> Job:
    """
    Move a job to `target_status` and sync its booking.

    expected_status, when given, makes the call fail with InvalidTransition
    unless the job is still in that status (optimistic check for UIs).

    Raises:
        NotFound, ValidationError, InvalidTransition, EvidenceRequired,
        GateNotSatisfied (target 'completed'), LockTimeout
    """
    target_status = job_state.normalize_status(target_status)
    job_state.validate_status(target_status)
    observed = {"job": job_state.normalize_status(expected_status)} if expected_status else {}

    def _op():
        booking, job = _lock_job_pair(job_id)
        _expect_unchanged(observed, "job", job.status, f"Job {job.job_number}", target_status)
        _apply_job_transition(booking, job, target_status, actor)
        return job

    job = run_atomic(_op)
    current_app.logger.info("Job %s moved to '%s'", job.job_number, job.status)
    return job


def submit_job_evidence(
    job_id: int,
    status: str,
    evidence: Mapping[str, Any] | None,
    *,
    actor: str | None = None,
) -> Job:
    """
    Capture driver evidence for one job status (insert-only).

    Raises:
        NotFound, ValidationError, EvidenceAlreadyExists, InvalidTransition (job terminal)
    """
    status = job_state.normalize_status(status)
    fields = job_state.normalize_evidence(evidence)

    def _op():
        booking, job = _lock_job_pair(job_id)
        _record_evidence(booking, job, status, fields, actor)
        return job

    job = run_atomic(_op)
    current_app.logger.info("Evidence for '%s' captured on job %s", status, job.job_number)
    return job


def advance_job(
    job_id: int,
    target_status: str,
    evidence: Mapping[str, Any] | None = None,
    *,
    actor: str | None = None,
    expected_status: str | None = None,
) -> Job:
    """
    Submit evidence for `target_status` and move the job there, atomically.

    Either both happen or neither does. Without `evidence` this is a plain
    transition, which is also how a driver app recovers when evidence was
    stored by an earlier call but the transition never ran.
    """
    target_status = job_state.normalize_status(target_status)
    job_state.validate_status(target_status)
    fields = job_state.normalize_evidence(evidence) if evidence is not None else None
    observed = {"job": job_state.normalize_status(expected_status)} if expected_status else {}

    def _op():
        booking, job = _lock_job_pair(job_id)
        _expect_unchanged(observed, "job", job.status, f"Job {job.job_number}", target_status)
        _require_job_transition(job, target_status)
        if fields is not None:
            _record_evidence(booking, job, target_status, fields, actor)
        _apply_job_transition(booking, job, target_status, actor)
        return job

    job = run_atomic(_op)
    current_app.logger.info("Job %s advanced to '%s'", job.job_number, job.status)
    return job


def update_journey_details(job_id: int, fields: Mapping[str, Any]) -> Job:
    """
    Record site access notes for the driver before they set off.

    Only while the job is 'booked' or 'routed'; unknown keys are rejected.
    """
    if not isinstance(fields, Mapping) or not fields:
        raise ValidationError("At least one journey field is required")
    unknown = set(fields) - set(JOURNEY_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown journey fields: {', '.join(sorted(unknown))}")
    cleaned = {key: _optional_text(value, key) for key, value in fields.items()}

    def _op():
        booking, job = _lock_job_pair(job_id)
        if job.status not in JOURNEY_EDITABLE_STATUSES:
            raise InvalidTransition(
                f"Journey details for job {job.job_number} are locked once the job is '{job.status}'",
                current_status=job.status,
            )
        details = dict(job.journey_details or {})
        details.update(cleaned)
        job.journey_details = details
        job.updated_at = utcnow()
        return job

    return run_atomic(_op)


# =============================================================================
# Booking transitions and approval
# =============================================================================

def _mirror_to_job(booking: Booking, job: Job, target_status: str, actor: str | None) -> None:
    if target_status not in BOOKING_TO_JOB_MIRROR or job.status == target_status:
        return
    if not job_state.can_transition(job.status, target_status):
        return

    from_status = job.status
    job_state.transition(job, target_status)
    job.updated_at = utcnow()
    append_lifecycle_event(
        booking_id=booking.id,
        job_id=job.id,
        event_type=f"job.{target_status}",
        entity_type="job",
        entity_id=job.id,
        from_status=from_status,
        to_status=target_status,
        actor=actor,
        note=f"Followed booking {booking.booking_number}",
    )


def transition_booking_status(
    booking_id: int,
    target_status: str,
    notes: str | None = None,
    *,
    actor: str | None = None,
    expected_status: str | None = None,
) -> Booking:
    """
    Move a booking to `target_status`.

    - 'scheduled' is only reachable through assign_driver (a job must exist)
    - 'completed' goes through approve_booking, so the completion gate applies
    - 'cancelled' also cancels a linked job that is not finished
    - 'sanitised'/'graded' also move the linked job when it can take that status

    Raises:
        NotFound, ValidationError, InvalidTransition, GateNotSatisfied, LockTimeout
    """
    booking_state.validate_status(target_status)
    if target_status == "completed":
        return approve_booking(booking_id, approved_by=actor, expected_status=expected_status)

    notes = _optional_text(notes, "notes")
    if expected_status:
        booking_state.validate_status(expected_status)
    observed = {"booking": expected_status} if expected_status else {}

    def _op():
        booking, job = _lock_pair(booking_id)
        _expect_unchanged(observed, "booking", booking.status, f"Booking {booking.booking_number}", target_status)

        if target_status == "scheduled":
            raise InvalidTransition(
                f"Booking {booking.booking_number} is scheduled by assigning a driver",
                current_status=booking.status,
                target_status=target_status,
            )

        from_status = booking.status
        booking_state.transition(booking, target_status, notes=notes)
        append_lifecycle_event(
            booking_id=booking.id,
            job_id=booking.job_id,
            event_type=f"booking.{target_status}",
            entity_type="booking",
            entity_id=booking.id,
            from_status=from_status,
            to_status=target_status,
            actor=actor,
            note=notes,
        )
        if job is not None:
            _mirror_to_job(booking, job, target_status, actor)
        return booking

    booking = run_atomic(_op)
    current_app.logger.info("Booking %s moved to '%s'", booking.booking_number, booking.status)
    return booking


def evaluate_completion_gate(booking: Booking) -> bool:
    """True iff every asset line is graded, sanitised, and all its sanitisation is verified."""
    return record_service.completion_counts(booking)["ready"]


def get_completion_status(booking_id: int) -> dict:
    booking = get_booking(booking_id)
    return record_service.completion_counts(booking)


def approve_booking(
    booking_id: int,
    approved_by: str | None = None,
    *,
    expected_status: str | None = None,
) -> Booking:
    """
    Final approval: booking -> completed and, if linked, job -> completed.

    The completion gate is checked first, independent of the transition
    tables. All-or-nothing: if the job cannot complete, neither does the booking.

    Raises:
        NotFound, GateNotSatisfied, InvalidTransition, LockTimeout
    """
    if expected_status:
        booking_state.validate_status(expected_status)
    observed = {"booking": expected_status} if expected_status else {}

    def _op():
        booking, job = _lock_pair(booking_id)
        _expect_unchanged(observed, "booking", booking.status, f"Booking {booking.booking_number}", "completed")

        _require_gate(booking)
        if job is not None and job.status != "completed":
            _require_job_transition(job, "completed")

        from_status = booking.status
        booking_state.transition(booking, "completed")
        booking.completed_by = approved_by
        append_lifecycle_event(
            booking_id=booking.id,
            job_id=booking.job_id,
            event_type="booking.completed",
            entity_type="booking",
            entity_id=booking.id,
            from_status=from_status,
            to_status="completed",
            actor=approved_by,
            note="Approved",
        )

        if job is not None and job.status != "completed":
            job_from = job.status
            job_state.transition(job, "completed")
            job.updated_at = utcnow()
            append_lifecycle_event(
                booking_id=booking.id,
                job_id=job.id,
                event_type="job.completed",
                entity_type="job",
                entity_id=job.id,
                from_status=job_from,
                to_status="completed",
                actor=approved_by,
                note=f"Booking {booking.booking_number} approved",
            )
        return booking

    booking = run_atomic(_op)
    current_app.logger.info("Booking %s approved by %s", booking.booking_number, approved_by)
    return booking


# =============================================================================
# Grading and sanitisation
# =============================================================================

def record_grade(
    booking_id: int,
    asset_id: str,
    grade: str,
    *,
    condition: str | None = None,
    notes: str | None = None,
    graded_by: str | None = None,
):
    """
    Grade one asset line; a second call re-grades it in place.

    Raises:
        NotFound: booking or asset line
        ValidationError: unknown grade
        InvalidTransition: booking not sanitised/graded/completed
    """
    validate_grade(grade)
    condition = _optional_text(condition, "condition")
    notes = _optional_text(notes, "notes")

    def _op():
        booking, job = _lock_pair(booking_id)
        if booking.status not in GRADE_ALLOWED_STATUSES:
            raise InvalidTransition(
                f"Booking {booking.booking_number} is '{booking.status}'; "
                f"grading needs it to be sanitised, graded or completed",
                current_status=booking.status,
            )
        line = _require_line(booking, asset_id)
        record, previous_grade = record_service.upsert_grading_record(
            booking, line, grade, condition=condition, notes=notes, graded_by=graded_by,
        )
        append_lifecycle_event(
            booking_id=booking.id,
            job_id=booking.job_id,
            event_type="grading.revised" if previous_grade else "grading.recorded",
            entity_type="grading",
            entity_id=record.id,
            actor=graded_by,
            note=f"{asset_id}: {previous_grade} -> {grade}" if previous_grade else f"{asset_id}: {grade}",
        )
        return record

    return run_atomic(_op)


def record_sanitisation(
    booking_id: int,
    asset_id: str,
    method: str,
    *,
    method_details: str | None = None,
    notes: str | None = None,
    performed_by: str | None = None,
):
    """
    Append a sanitisation record (and certificate) for one asset line.

    Raises:
        NotFound: booking or asset line
        ValidationError: unknown method
        InvalidTransition: booking not yet collected, or cancelled
    """
    validate_sanitisation_method(method)
    method_details = _optional_text(method_details, "method_details")
    notes = _optional_text(notes, "notes")

    def _op():
        booking, job = _lock_pair(booking_id)
        if booking.status not in SANITISE_ALLOWED_STATUSES:
            raise InvalidTransition(
                f"Booking {booking.booking_number} is '{booking.status}'; "
                f"sanitisation needs the assets to have been collected",
                current_status=booking.status,
            )
        line = _require_line(booking, asset_id)
        record = record_service.add_sanitisation_record(
            booking, line, method,
            method_details=method_details, notes=notes, performed_by=performed_by,
        )
        append_lifecycle_event(
            booking_id=booking.id,
            job_id=booking.job_id,
            event_type="sanitisation.recorded",
            entity_type="sanitisation",
            entity_id=record.id,
            actor=performed_by,
            note=f"{asset_id}: {method} ({record.certificate_id})",
        )
        return record

    return run_atomic(_op)


def verify_sanitisation(record_id: int, verified_by: str | None = None):
    """Mark a sanitisation record verified. Idempotent."""
    def _op():
        booking_id = (
            db.session.query(SanitisationRecord.booking_id).filter_by(id=record_id).scalar()
        )
        if booking_id is None:
            raise NotFound(f"Sanitisation record {record_id} not found")

        booking, job = _lock_pair(booking_id)
        record = record_service.get_sanitisation_record(record_id)
        if record_service.mark_verified(record, verified_by):
            append_lifecycle_event(
                booking_id=booking.id,
                job_id=booking.job_id,
                event_type="sanitisation.verified",
                entity_type="sanitisation",
                entity_id=record.id,
                actor=verified_by,
                note=f"{record.asset_id}: {record.certificate_id}",
            )
        return record

    return run_atomic(_op)


# =============================================================================
# Read side
# =============================================================================

def get_booking(booking_id: int) -> Booking:
    booking = db.session.query(Booking).filter_by(id=booking_id).first()
    if booking is None:
        raise NotFound(f"Booking {booking_id} not found")
    return booking


def get_booking_by_number(booking_number: str) -> Booking:
    booking = db.session.query(Booking).filter_by(booking_number=booking_number).first()
    if booking is None:
        raise NotFound(f"Booking {booking_number} not found")
    return booking


def list_bookings(
    *,
    status: str | None = None,
    client_name: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Booking]:
    q = db.session.query(Booking)
    if status:
        booking_state.validate_status(status)
        q = q.filter_by(status=status)
    if client_name:
        q = q.filter(Booking.client_name.ilike(f"%{client_name}%"))
    limit = max(1, min(limit, 500))
    return q.order_by(Booking.created_at.desc(), Booking.id.desc()).offset(max(0, offset)).limit(limit).all()


def get_job(job_id: int) -> Job:
    job = db.session.query(Job).filter_by(id=job_id).first()
    if job is None:
        raise NotFound(f"Job {job_id} not found")
    return job


def list_jobs(
    *,
    status: str | None = None,
    driver_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Job]:
    q = db.session.query(Job)
    if status:
        status = job_state.normalize_status(status)
        job_state.validate_status(status)
        q = q.filter_by(status=status)
    if driver_id is not None:
        q = q.filter_by(driver_id=driver_id)
    limit = max(1, min(limit, 500))
    return q.order_by(Job.created_at.desc(), Job.id.desc()).offset(max(0, offset)).limit(limit).all()


def get_booking_records(booking_id: int) -> dict:
    """Grading and sanitisation records for a booking, with gate progress."""
    booking = get_booking(booking_id)
    return {
        "grading_records": [r.to_dict() for r in record_service.list_grading_records(booking.id)],
        "sanitisation_records": [r.to_dict() for r in record_service.list_sanitisation_records(booking.id)],
        "completion": record_service.completion_counts(booking),
    }


def get_booking_detail(booking_id: int) -> dict:
    """Booking with its job, records and completion progress."""
    booking = get_booking(booking_id)
    return {
        **booking.to_dict(),
        "next_statuses": booking_state.next_statuses(booking.status),
        "job": booking.job.to_dict() if booking.job else None,
        **get_booking_records(booking_id),
    }
