# Overview: Job status machine with the driver evidence gate.

"""
Job lifecycle.

STATE MACHINE:
    booked -> routed -> en-route -> arrived -> collected -> warehouse
           -> sanitised -> graded -> completed
    booked -> en-route is also allowed (driver accepts straight away).
    cancelled is reachable from every non-terminal state.

EVIDENCE GATE:
    en-route, arrived, collected and warehouse are driver-side steps. A job
    may only enter one of them if an evidence entry for that exact status
    already exists with at least one photo and a signature. Seal numbers and
    notes are optional.

EVIDENCE RULES:
1. One entry per (job, status); a second submission is rejected, never merged
2. Entries are insert-only; the first submission's content is final
3. The unique constraint on job_evidence backs rule 1 under concurrency
"""

from __future__ import annotations

from typing import Any, Literal, Mapping

from sqlalchemy.exc import IntegrityError

from ..errors import EvidenceAlreadyExists, EvidenceRequired, InvalidTransition, ValidationError
from ..extensions import db
from ..models import JobEvidence
from ..time_utils import utcnow


JobStatus = Literal[
    "booked", "routed", "en-route", "arrived", "collected",
    "warehouse", "sanitised", "graded", "completed", "cancelled",
]

LIFECYCLE_ORDER = (
    "booked", "routed", "en-route", "arrived", "collected",
    "warehouse", "sanitised", "graded", "completed",
)
VALID_STATUSES = set(LIFECYCLE_ORDER) | {"cancelled"}
TERMINAL_STATUSES = {"completed", "cancelled"}

TRANSITIONS: dict[str, set[str]] = {
    "booked": {"routed", "en-route"},
    "routed": {"en-route"},
    "en-route": {"arrived"},
    "arrived": {"collected"},
    "collected": {"warehouse"},
    "warehouse": {"sanitised"},
    "sanitised": {"graded"},
    "graded": {"completed"},
    "completed": set(),
    "cancelled": set(),
}

EVIDENCE_REQUIRED_STATUSES = {"en-route", "arrived", "collected", "warehouse"}

# Older driver apps send the backend spelling
_STATUS_ALIASES = {"en_route": "en-route"}


def normalize_status(status: str) -> str:
    if not isinstance(status, str):
        raise ValidationError("Job status must be a string")
    return _STATUS_ALIASES.get(status, status)


def validate_status(status: str) -> None:
    if not isinstance(status, str) or status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid job status '{status}'. Must be one of: {', '.join(LIFECYCLE_ORDER)}, cancelled"
        )


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def requires_evidence(status: str) -> bool:
    return status in EVIDENCE_REQUIRED_STATUSES


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


def has_valid_evidence(job, status: str) -> bool:
    entry = job.evidence_for(status)
    return entry is not None and entry.has_proof()


def check_evidence_gate(job, target_status: str) -> None:
    if requires_evidence(target_status) and not has_valid_evidence(job, target_status):
        raise EvidenceRequired(
            f"Job {job.job_number} cannot move to '{target_status}' without evidence "
            f"(at least one photo and a signature) for that status"
        )


def transition(job, target_status: str):
    """
    Move `job` to `target_status`.

    Raises:
        ValidationError: unknown status
        InvalidTransition: not reachable from the current status
        EvidenceRequired: driver-side step without photo + signature evidence
    """
    target_status = normalize_status(target_status)
    validate_status(target_status)
    current = job.status

    if not can_transition(current, target_status):
        raise InvalidTransition(
            f"Cannot move job {job.job_number} from '{current}' to '{target_status}'",
            current_status=current,
            target_status=target_status,
        )

    check_evidence_gate(job, target_status)

    job.status = target_status
    if target_status == "completed" and job.completed_at is None:
        job.completed_at = utcnow()
    if target_status == "cancelled" and job.cancelled_at is None:
        job.cancelled_at = utcnow()

    return job


def _string_list(value: Any, field: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field} must be a list of strings")
    cleaned = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ValidationError(f"{field} must contain only non-empty strings")
        cleaned.append(item.strip())
    return cleaned


def normalize_evidence(payload: Mapping[str, Any] | None) -> dict:
    """
    Coerce an evidence payload to {photos, signature, seal_numbers, notes}.

    Accepts camelCase keys from the driver app and single strings where a
    list is expected.
    """
    payload = payload or {}
    if not isinstance(payload, Mapping):
        raise ValidationError("evidence must be an object")

    signature = payload.get("signature")
    if signature is not None and not isinstance(signature, str):
        raise ValidationError("signature must be a string")
    notes = payload.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be a string")

    return {
        "photos": _string_list(payload.get("photos"), "photos"),
        "signature": signature.strip() if signature and signature.strip() else None,
        "seal_numbers": _string_list(
            payload.get("seal_numbers", payload.get("sealNumbers")), "seal_numbers"
        ),
        "notes": notes.strip() if notes and notes.strip() else None,
    }


def submit_evidence(
    job,
    status: str,
    photos: list[str],
    signature: str | None,
    seal_numbers: list[str] | None = None,
    notes: str | None = None,
) -> JobEvidence:
    """
    Record evidence for `status` on `job` (insert-only).

    Raises:
        ValidationError: unknown status, or missing photo/signature for a gated status
        InvalidTransition: job already completed or cancelled
        EvidenceAlreadyExists: evidence for this status was already captured
    """
    status = normalize_status(status)
    validate_status(status)
    if status == "cancelled":
        raise ValidationError("Evidence cannot be recorded for 'cancelled'")

    if job.evidence_for(status) is not None:
        raise EvidenceAlreadyExists(
            f"Evidence for '{status}' on job {job.job_number} already exists and is read-only"
        )

    if is_terminal(job.status):
        raise InvalidTransition(
            f"Job {job.job_number} is {job.status}; evidence can no longer be added",
            current_status=job.status,
            target_status=status,
        )

    if requires_evidence(status):
        if not photos:
            raise ValidationError(f"At least one photo is required for '{status}'")
        if not signature:
            raise ValidationError(f"A signature is required for '{status}'")

    entry = JobEvidence(
        job_id=job.id,
        status=status,
        photos=list(photos),
        signature=signature,
        seal_numbers=list(seal_numbers or []),
        notes=notes,
        created_at=utcnow(),
    )
    try:
        with db.session.begin_nested():
            db.session.add(entry)
    except IntegrityError as exc:
        raise EvidenceAlreadyExists(
            f"Evidence for '{status}' on job {job.job_number} already exists and is read-only"
        ) from exc

    if entry not in job.evidence:
        job.evidence.append(entry)
    return entry
