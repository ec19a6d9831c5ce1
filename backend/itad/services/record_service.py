# Overview: Grading and sanitisation record store plus completion-gate aggregation.

"""
Record store.

Grading and sanitisation records are keyed by (booking_id, asset_id), where
asset_id is the category id of one of the booking's asset lines. Writers here
assume the caller already holds the booking lock (see lifecycle_service);
readers need no lock.
"""

from __future__ import annotations

from collections import defaultdict

from flask import current_app

from ..catalog import validate_grade, validate_sanitisation_method
from ..errors import NotFound
from ..extensions import db
from ..models import GradingRecord, SanitisationRecord
from ..time_utils import utcnow
from . import value_service
from .document_service import CERTIFICATE_DOCUMENT, next_document_number


def upsert_grading_record(
    booking,
    line,
    grade: str,
    *,
    condition: str | None = None,
    notes: str | None = None,
    graded_by: str | None = None,
) -> tuple[GradingRecord, str | None]:
    """
    Grade one asset line. Returns (record, previous_grade).

    previous_grade is None on the first grade; on a re-grade the existing
    row is overwritten and its revision bumped.
    """
    validate_grade(grade)
    per_unit = value_service.resale_value_per_unit_pence(line.category_id, grade)
    total = value_service.resale_line_total_pence(per_unit, line.quantity)

    record = (
        db.session.query(GradingRecord)
        .filter_by(booking_id=booking.id, asset_id=line.category_id)
        .first()
    )
    previous_grade = None
    if record is None:
        record = GradingRecord(
            booking_id=booking.id,
            job_id=booking.job_id,
            asset_id=line.category_id,
            asset_category=line.category_name,
            revision=1,
        )
        db.session.add(record)
    else:
        previous_grade = record.grade
        record.revision = record.revision + 1

    record.grade = grade
    record.quantity = line.quantity
    record.resale_value_per_unit_pence = per_unit
    record.resale_total_pence = total
    record.condition = condition
    record.notes = notes
    record.graded_at = utcnow()
    record.graded_by = graded_by
    db.session.flush()
    return record, previous_grade


def certificate_url_for(certificate_id: str) -> str:
    base = current_app.config["CERTIFICATE_BASE_URL"].rstrip("/")
    return f"{base}/{certificate_id}.pdf"


def add_sanitisation_record(
    booking,
    line,
    method: str,
    *,
    method_details: str | None = None,
    notes: str | None = None,
    performed_by: str | None = None,
) -> SanitisationRecord:
    """Append a sanitisation batch for one asset line, issuing its certificate number."""
    validate_sanitisation_method(method)
    certificate_id = next_document_number(document_type=CERTIFICATE_DOCUMENT)

    record = SanitisationRecord(
        booking_id=booking.id,
        job_id=booking.job_id,
        asset_id=line.category_id,
        method=method,
        method_details=method_details,
        certificate_id=certificate_id,
        certificate_url=certificate_url_for(certificate_id),
        verified=False,
        notes=notes,
        performed_at=utcnow(),
        performed_by=performed_by,
    )
    db.session.add(record)
    db.session.flush()
    return record


def mark_verified(record: SanitisationRecord, verified_by: str | None = None) -> bool:
    """Set verified; returns False if it already was (idempotent, first verifier kept)."""
    if record.verified:
        return False
    record.verified = True
    record.verified_at = utcnow()
    record.verified_by = verified_by
    return True


def get_sanitisation_record(record_id: int) -> SanitisationRecord:
    record = db.session.query(SanitisationRecord).filter_by(id=record_id).first()
    if record is None:
        raise NotFound(f"Sanitisation record {record_id} not found")
    return record


def list_grading_records(booking_id: int | None = None) -> list[GradingRecord]:
    q = db.session.query(GradingRecord)
    if booking_id is not None:
        q = q.filter_by(booking_id=booking_id)
    return q.order_by(GradingRecord.id.asc()).all()


def list_sanitisation_records(booking_id: int | None = None) -> list[SanitisationRecord]:
    q = db.session.query(SanitisationRecord)
    if booking_id is not None:
        q = q.filter_by(booking_id=booking_id)
    return q.order_by(SanitisationRecord.id.asc()).all()


def completion_counts(booking) -> dict:
    """
    Per-asset-line progress towards the completion gate.

    A line counts as:
    - graded:    it has a grading record
    - sanitised: it has at least one sanitisation record
    - verified:  it has at least one sanitisation record and all of them are verified
    ready is True only when every line is graded, sanitised and verified.
    """
    graded_assets = {r.asset_id for r in list_grading_records(booking.id)}
    sanitisation = defaultdict(list)
    for r in list_sanitisation_records(booking.id):
        sanitisation[r.asset_id].append(r)

    asset_ids = [line.category_id for line in booking.asset_lines]
    graded = sum(1 for a in asset_ids if a in graded_assets)
    sanitised = sum(1 for a in asset_ids if sanitisation.get(a))
    verified = sum(
        1 for a in asset_ids
        if sanitisation.get(a) and all(r.verified for r in sanitisation[a])
    )
    total = len(asset_ids)

    return {
        "total": total,
        "graded": graded,
        "sanitised": sanitised,
        "verified": verified,
        "ready": total > 0 and graded == total and sanitised == total and verified == total,
    }
