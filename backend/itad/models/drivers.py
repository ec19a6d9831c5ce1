from __future__ import annotations

from ..extensions import db
from itad.time_utils import to_utc_z


class Driver(db.Model):
    """
    Collection driver and their vehicle.

    Jobs copy these fields at assignment time, so editing or deactivating a
    driver never rewrites the history of jobs they already drove.
    """
    __tablename__ = "drivers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    vehicle_reg = db.Column(db.String(16), nullable=False, unique=True)
    vehicle_type = db.Column(db.String(16), nullable=False, default="van")  # van, truck, car
    vehicle_fuel_type = db.Column(db.String(16), nullable=False, default="diesel")  # petrol, diesel, electric
    phone = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Driver id={self.id} name={self.name!r} reg={self.vehicle_reg!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "vehicle_reg": self.vehicle_reg,
            "vehicle_type": self.vehicle_type,
            "vehicle_fuel_type": self.vehicle_fuel_type,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
