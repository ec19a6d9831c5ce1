# Overview: Service-layer operations for the driver directory.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..catalog import FUEL_TYPES, VEHICLE_TYPES
from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Driver
from .concurrency import run_atomic


def _require_text(value, field: str, max_len: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters")
    return value


def create_driver(
    name: str,
    vehicle_reg: str,
    vehicle_type: str = "van",
    vehicle_fuel_type: str = "diesel",
    phone: str | None = None,
) -> Driver:
    """
    Register a driver.

    Raises:
        ValidationError: missing fields, unknown vehicle/fuel type, duplicate registration
    """
    name = _require_text(name, "name", 255)
    vehicle_reg = _require_text(vehicle_reg, "vehicle_reg", 16).upper()
    if vehicle_type not in VEHICLE_TYPES:
        raise ValidationError(f"vehicle_type must be one of: {', '.join(VEHICLE_TYPES)}")
    if vehicle_fuel_type not in FUEL_TYPES:
        raise ValidationError(f"vehicle_fuel_type must be one of: {', '.join(FUEL_TYPES)}")

    def _op():
        if db.session.query(Driver.id).filter_by(vehicle_reg=vehicle_reg).first():
            raise ValidationError(f"A driver with vehicle {vehicle_reg} already exists")

        driver = Driver(
            name=name,
            vehicle_reg=vehicle_reg,
            vehicle_type=vehicle_type,
            vehicle_fuel_type=vehicle_fuel_type,
            phone=phone.strip() if phone else None,
            is_active=True,
        )
        db.session.add(driver)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ValidationError(f"A driver with vehicle {vehicle_reg} already exists") from exc
        return driver

    return run_atomic(_op)


def get_driver(driver_id: int, *, active_only: bool = False) -> Driver:
    driver = db.session.query(Driver).filter_by(id=driver_id).first()
    if driver is None or (active_only and not driver.is_active):
        raise NotFound(f"Driver {driver_id} not found")
    return driver


def list_drivers(*, include_inactive: bool = False) -> list[Driver]:
    q = db.session.query(Driver)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(Driver.name.asc(), Driver.id.asc()).all()


def deactivate_driver(driver_id: int) -> Driver:
    """Hide a driver from assignment. Jobs they already hold are unaffected."""
    def _op():
        driver = get_driver(driver_id)
        driver.is_active = False
        return driver

    return run_atomic(_op)
