# Overview: Service-layer operations for impact reporting; read-only aggregates over jobs.

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func

from ..catalog import FUEL_TYPES
from ..extensions import db
from ..models import Booking, Job, JobAsset
from . import job_state, value_service


def _decimal(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def get_impact_summary(*, client_name: str | None = None) -> dict:
    """
    Dashboard totals across all jobs that were not cancelled.

    co2e_saved_kg.completed counts finished jobs only; .estimated counts
    every live job. travel_emissions_kg.by_fuel_type is what the combined
    round-trip distance would have emitted with each fuel.
    """
    base = db.session.query(Job).filter(Job.status != "cancelled")
    if client_name:
        base = base.join(Booking, Booking.id == Job.booking_id).filter(
            Booking.client_name.ilike(f"%{client_name}%")
        )
    job_ids = [row.id for row in base.with_entities(Job.id).all()]

    totals = base.with_entities(
        func.count(Job.id).label("total_jobs"),
        func.coalesce(func.sum(Job.co2e_saved_kg), 0).label("estimated_co2e"),
        func.coalesce(func.sum(Job.travel_emissions_kg), 0).label("travel_emissions"),
        func.coalesce(func.sum(Job.buyback_value_pence), 0).label("buyback"),
        func.coalesce(func.sum(Job.round_trip_distance_km), 0).label("distance_km"),
        func.avg(Job.charity_percent).label("avg_charity"),
    ).one()

    completed = base.filter(Job.status == "completed").with_entities(
        func.count(Job.id).label("jobs"),
        func.coalesce(func.sum(Job.co2e_saved_kg), 0).label("co2e"),
    ).one()

    active_jobs = base.filter(~Job.status.in_(job_state.TERMINAL_STATUSES)).count()

    total_assets = 0
    if job_ids:
        total_assets = int(
            db.session.query(func.coalesce(func.sum(JobAsset.quantity), 0))
            .filter(JobAsset.job_id.in_(job_ids))
            .scalar()
            or 0
        )

    distance_km = _decimal(totals.distance_km).quantize(value_service.KG, rounding=ROUND_HALF_UP)
    avg_charity = float(totals.avg_charity) if totals.avg_charity is not None else 0.0

    return {
        "total_jobs": int(totals.total_jobs or 0),
        "active_jobs": active_jobs,
        "completed_jobs": int(completed.jobs or 0),
        "booked_jobs": int(totals.total_jobs or 0) - int(completed.jobs or 0),
        "co2e_saved_kg": {
            "completed": float(_decimal(completed.co2e).quantize(value_service.KG, rounding=ROUND_HALF_UP)),
            "estimated": float(_decimal(totals.estimated_co2e).quantize(value_service.KG, rounding=ROUND_HALF_UP)),
        },
        "travel_emissions_kg": {
            "actual": float(_decimal(totals.travel_emissions).quantize(value_service.KG, rounding=ROUND_HALF_UP)),
            "by_fuel_type": {
                fuel: float(value_service.travel_emissions_kg(distance_km, fuel))
                for fuel in FUEL_TYPES
            },
        },
        "total_distance_km": float(distance_km),
        "total_distance_miles": float(value_service.km_to_miles(distance_km)),
        "total_buyback_pence": int(totals.buyback or 0),
        "total_assets": total_assets,
        "avg_charity_percent": round(avg_charity, 1),
    }
