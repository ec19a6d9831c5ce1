from __future__ import annotations

from ..extensions import db
from itad.time_utils import to_utc_z


class GradingRecord(db.Model):
    """
    Resale grade for one asset category on a booking.

    At most one row per (booking_id, asset_id). Re-grading updates the row in
    place and bumps `revision`; the previous grade survives on the timeline.
    Resale values are integer pence.
    """
    __tablename__ = "grading_records"
    __table_args__ = (
        db.UniqueConstraint("booking_id", "asset_id", name="uq_grading_booking_asset"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    job_id = db.Column(db.Integer, db.ForeignKey("jobs.id"), nullable=True, index=True)

    # Asset category id of the booking's asset line (e.g., "laptop")
    asset_id = db.Column(db.String(32), nullable=False)
    asset_category = db.Column(db.String(64), nullable=False)

    grade = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    resale_value_per_unit_pence = db.Column(db.Integer, nullable=False)
    resale_total_pence = db.Column(db.Integer, nullable=False)

    condition = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    graded_at = db.Column(db.DateTime(timezone=True), nullable=False)
    graded_by = db.Column(db.String(64), nullable=True)
    revision = db.Column(db.Integer, nullable=False, default=1)

    booking = db.relationship("Booking", backref=db.backref("grading_records", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "job_id": self.job_id,
            "asset_id": self.asset_id,
            "asset_category": self.asset_category,
            "grade": self.grade,
            "quantity": self.quantity,
            "resale_value_per_unit_pence": self.resale_value_per_unit_pence,
            "resale_total_pence": self.resale_total_pence,
            "condition": self.condition,
            "notes": self.notes,
            "graded_at": to_utc_z(self.graded_at),
            "graded_by": self.graded_by,
            "revision": self.revision,
        }


class SanitisationRecord(db.Model):
    """
    Certified data-wipe or destruction of (part of) one asset category.

    Many per (booking_id, asset_id): partial batches each get a record and a
    certificate. `verified` only ever goes from False to True.
    """
    __tablename__ = "sanitisation_records"
    __table_args__ = (
        db.Index("ix_sanitisation_booking_asset", "booking_id", "asset_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    job_id = db.Column(db.Integer, db.ForeignKey("jobs.id"), nullable=True, index=True)
    asset_id = db.Column(db.String(32), nullable=False)

    method = db.Column(db.String(32), nullable=False)
    method_details = db.Column(db.Text, nullable=True)

    certificate_id = db.Column(db.String(32), nullable=False, unique=True)
    certificate_url = db.Column(db.String(512), nullable=False)

    verified = db.Column(db.Boolean, nullable=False, default=False)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verified_by = db.Column(db.String(64), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    performed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    performed_by = db.Column(db.String(64), nullable=True)

    booking = db.relationship("Booking", backref=db.backref("sanitisation_records", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "job_id": self.job_id,
            "asset_id": self.asset_id,
            "method": self.method,
            "method_details": self.method_details,
            "certificate_id": self.certificate_id,
            "certificate_url": self.certificate_url,
            "verified": self.verified,
            "verified_at": to_utc_z(self.verified_at),
            "verified_by": self.verified_by,
            "notes": self.notes,
            "timestamp": to_utc_z(self.performed_at),
            "performed_by": self.performed_by,
        }
