from __future__ import annotations

from ..extensions import db
from itad.time_utils import to_utc_z


def _kg(value) -> float | None:
    return float(value) if value is not None else None


class Booking(db.Model):
    """
    Customer request for an IT asset collection.

    LIFECYCLE:
        created -> scheduled -> collected -> sanitised -> graded -> completed
        (any non-terminal state) -> cancelled

    DESIGN:
    - Asset lines are fixed at creation; nothing updates or deletes them
    - Estimates (CO2e, buyback, distance) are computed once, at creation
    - job_id is written exactly once, by driver assignment
    - Each *_at lifecycle timestamp is stamped the first time the status is reached
    - version_id makes every write a compare-and-swap; the lifecycle service
      bumps it on every operation touching the booking or its job
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.Index("ix_bookings_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable booking number (e.g., "BK-2026-0001")
    booking_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    client_name = db.Column(db.String(255), nullable=True, index=True)

    # Collection site
    site_name = db.Column(db.String(255), nullable=False)
    site_address = db.Column(db.Text, nullable=False)
    postcode = db.Column(db.String(16), nullable=False)
    site_lat = db.Column(db.Float, nullable=True)
    site_lng = db.Column(db.Float, nullable=True)
    contact_name = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(32), nullable=True)

    scheduled_date = db.Column(db.Date, nullable=False)
    charity_percent = db.Column(db.Integer, nullable=False, default=0)
    preferred_vehicle_type = db.Column(db.String(16), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="created", index=True)

    # Estimates (computed once at creation)
    estimated_co2e_kg = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    estimated_buyback_pence = db.Column(db.Integer, nullable=False, default=0)
    round_trip_distance_km = db.Column(db.Numeric(10, 2), nullable=True)
    round_trip_distance_miles = db.Column(db.Numeric(10, 2), nullable=True)

    # Driver assignment
    driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=True, index=True)
    driver_name = db.Column(db.String(255), nullable=True)

    # Not a FK: jobs.booking_id is the authoritative link, this is the booking-side pointer
    job_id = db.Column(db.Integer, nullable=True, unique=True)

    # Lifecycle timestamps
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    scheduled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    collected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sanitised_at = db.Column(db.DateTime(timezone=True), nullable=True)
    graded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    cancellation_notes = db.Column(db.Text, nullable=True)

    # Actor attribution (identity is owned by the auth service)
    created_by = db.Column(db.String(64), nullable=True)
    scheduled_by = db.Column(db.String(64), nullable=True)
    completed_by = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    asset_lines = db.relationship(
        "BookingAssetLine",
        backref="booking",
        lazy=True,
        order_by="BookingAssetLine.id",
    )
    driver = db.relationship("Driver", foreign_keys=[driver_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Booking id={self.id} number={self.booking_number!r} status={self.status!r}>"

    def line_for(self, category_id: str) -> "BookingAssetLine | None":
        for line in self.asset_lines:
            if line.category_id == category_id:
                return line
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_number": self.booking_number,
            "client_name": self.client_name,
            "site_name": self.site_name,
            "site_address": self.site_address,
            "postcode": self.postcode,
            "site_lat": self.site_lat,
            "site_lng": self.site_lng,
            "contact_name": self.contact_name,
            "contact_phone": self.contact_phone,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "charity_percent": self.charity_percent,
            "preferred_vehicle_type": self.preferred_vehicle_type,
            "status": self.status,
            "assets": [line.to_dict() for line in self.asset_lines],
            "estimated_co2e_kg": _kg(self.estimated_co2e_kg),
            "estimated_buyback_pence": self.estimated_buyback_pence,
            "round_trip_distance_km": _kg(self.round_trip_distance_km),
            "round_trip_distance_miles": _kg(self.round_trip_distance_miles),
            "driver_id": self.driver_id,
            "driver_name": self.driver_name,
            "job_id": self.job_id,
            "created_at": to_utc_z(self.created_at),
            "scheduled_at": to_utc_z(self.scheduled_at),
            "collected_at": to_utc_z(self.collected_at),
            "sanitised_at": to_utc_z(self.sanitised_at),
            "graded_at": to_utc_z(self.graded_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_notes": self.cancellation_notes,
            "created_by": self.created_by,
            "scheduled_by": self.scheduled_by,
            "completed_by": self.completed_by,
            "version_id": self.version_id,
        }


class BookingAssetLine(db.Model):
    """
    One asset category on a booking.

    Immutable once the booking exists. Grading and sanitisation records
    reference a line by (booking_id, category_id).
    """
    __tablename__ = "booking_asset_lines"
    __table_args__ = (
        db.UniqueConstraint("booking_id", "category_id", name="uq_booking_lines_booking_category"),
        db.CheckConstraint("quantity > 0", name="ck_booking_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    category_id = db.Column(db.String(32), nullable=False)
    category_name = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "category_id": self.category_id,
            "category_name": self.category_name,
            "quantity": self.quantity,
        }
