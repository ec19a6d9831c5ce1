from __future__ import annotations

from ..extensions import db
from itad.time_utils import to_utc_z


class Job(db.Model):
    """
    Driver-facing execution unit for a booking's physical collection.

    LIFECYCLE:
        booked -> routed -> en-route -> arrived -> collected -> warehouse
               -> sanitised -> graded -> completed
        (booked may go straight to en-route; any non-terminal state -> cancelled)

    DESIGN:
    - Created exactly once, when a driver is first assigned to the booking
    - booking_id is unique: one job per booking, one booking per job
    - Driver fields are a snapshot taken at assignment and never change
    - Financial/CO2e figures are copied from the booking at creation;
      travel emissions are recomputed for the assigned driver's fuel type
    """
    __tablename__ = "jobs"
    __table_args__ = (
        db.Index("ix_jobs_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable job number (e.g., "JOB-2026-0001")
    job_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, unique=True)

    status = db.Column(db.String(16), nullable=False, default="booked", index=True)

    # Driver snapshot
    driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=True, index=True)
    driver_name = db.Column(db.String(255), nullable=False)
    vehicle_reg = db.Column(db.String(16), nullable=False)
    vehicle_type = db.Column(db.String(16), nullable=False)
    vehicle_fuel_type = db.Column(db.String(16), nullable=True)
    driver_phone = db.Column(db.String(32), nullable=True)

    # Copied/derived from the booking at creation
    co2e_saved_kg = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    travel_emissions_kg = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    buyback_value_pence = db.Column(db.Integer, nullable=False, default=0)
    charity_percent = db.Column(db.Integer, nullable=False, default=0)
    round_trip_distance_km = db.Column(db.Numeric(10, 2), nullable=True)

    # Site access notes captured before the driver sets off
    journey_details = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    booking = db.relationship("Booking", backref=db.backref("job", uselist=False, lazy=True))
    assets = db.relationship("JobAsset", backref="job", lazy=True, order_by="JobAsset.id")
    evidence = db.relationship("JobEvidence", backref="job", lazy=True, order_by="JobEvidence.id")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Job id={self.id} number={self.job_number!r} status={self.status!r}>"

    def evidence_for(self, status: str) -> "JobEvidence | None":
        for entry in self.evidence:
            if entry.status == status:
                return entry
        return None

    def driver_dict(self) -> dict:
        return {
            "id": self.driver_id,
            "name": self.driver_name,
            "vehicle_reg": self.vehicle_reg,
            "vehicle_type": self.vehicle_type,
            "vehicle_fuel_type": self.vehicle_fuel_type,
            "phone": self.driver_phone,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_number": self.job_number,
            "booking_id": self.booking_id,
            "status": self.status,
            "driver": self.driver_dict(),
            "assets": [asset.to_dict() for asset in self.assets],
            # Always a list, ordered by capture time
            "evidence": [entry.to_dict() for entry in self.evidence],
            "co2e_saved_kg": float(self.co2e_saved_kg) if self.co2e_saved_kg is not None else None,
            "travel_emissions_kg": float(self.travel_emissions_kg) if self.travel_emissions_kg is not None else None,
            "buyback_value_pence": self.buyback_value_pence,
            "charity_percent": self.charity_percent,
            "round_trip_distance_km": float(self.round_trip_distance_km) if self.round_trip_distance_km is not None else None,
            "journey_details": dict(self.journey_details or {}),
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "version_id": self.version_id,
        }


class JobAsset(db.Model):
    """Asset line copied from the booking onto the job."""
    __tablename__ = "job_assets"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey("jobs.id"), nullable=False, index=True)
    category_id = db.Column(db.String(32), nullable=False)
    category_name = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "quantity": self.quantity,
        }


class JobEvidence(db.Model):
    """
    Driver-captured proof for one job status.

    CRITICAL: At most one row per (job_id, status), enforced by the database.
    Rows are insert-only; nothing updates or deletes them.
    Photo and signature values are references into the file store, not blobs.
    """
    __tablename__ = "job_evidence"
    __table_args__ = (
        db.UniqueConstraint("job_id", "status", name="uq_job_evidence_job_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey("jobs.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False)
    photos = db.Column(db.JSON, nullable=False, default=list)
    signature = db.Column(db.Text, nullable=True)
    seal_numbers = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def has_proof(self) -> bool:
        return bool(self.photos) and bool(self.signature)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "photos": list(self.photos or []),
            "signature": self.signature,
            "seal_numbers": list(self.seal_numbers or []),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
