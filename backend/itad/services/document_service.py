# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow


BOOKING_DOCUMENT = "BOOKING"
JOB_DOCUMENT = "JOB"
CERTIFICATE_DOCUMENT = "SANITISATION_CERT"

DOCUMENT_PREFIXES = {
    BOOKING_DOCUMENT: "BK",
    JOB_DOCUMENT: "JOB",
    CERTIFICATE_DOCUMENT: "SAN",
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    *,
    document_type: str,
    year: int | None = None,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for a type within a year, e.g. "BK-2026-0007".

    Runs inside the caller's transaction: the counter row stays locked until
    the caller commits, and a rolled back caller gives the number back.
    """
    prefix = DOCUMENT_PREFIXES.get(document_type)
    if prefix is None:
        raise DocumentSequenceError(f"Unknown document_type '{document_type}'")
    if year is None:
        year = utcnow().year

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _allocated_number(document_type, year)
    else:
        try:
            # Savepoint so losing the insert race does not discard the caller's work
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, year=year, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _allocated_number(document_type, year)

    return f"{prefix}-{year}-{next_num:0{pad}d}"


def _allocated_number(document_type: str, year: int) -> int:
    db.session.flush()
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, year=year)
        .scalar()
    )
    return current - 1
