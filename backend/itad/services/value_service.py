# Overview: Pure resale-value and CO2e calculations; no database access.

"""
Value calculator.

All arithmetic is Decimal; money is returned as integer pence, CO2e as kg
quantized to 0.01. Rounding is always ROUND_HALF_UP and happens once, at the
end of each formula, so results are reproducible from the same inputs.
"""

from __future__ import annotations

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Mapping

from ..catalog import (
    EQUIVALENCY_DIVISORS,
    FUEL_TYPES,
    GRADE_MULTIPLIERS,
    WAREHOUSE_LAT,
    WAREHOUSE_LNG,
    emission_factor,
    get_category,
    validate_grade,
)

KG = Decimal("0.01")
EARTH_RADIUS_KM = 6371
MILES_PER_KM = Decimal("0.621371")


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() so floats like 80.1 stay 80.1 rather than their binary expansion
    return Decimal(str(value))


def _quantize_kg(value: Decimal) -> Decimal:
    return value.quantize(KG, rounding=ROUND_HALF_UP)


def _line_pairs(lines: Iterable) -> list[tuple[str, int]]:
    """Accept asset-line dicts or objects with category_id/quantity."""
    pairs = []
    for line in lines:
        if isinstance(line, Mapping):
            pairs.append((line["category_id"], int(line["quantity"])))
        else:
            pairs.append((line.category_id, int(line.quantity)))
    return pairs


# -- RESALE --

def grade_multiplier(grade: str) -> Decimal:
    return GRADE_MULTIPLIERS[validate_grade(grade)]


def resale_value_per_unit_pence(category_id: str, grade: str) -> int:
    """base value x grade multiplier, e.g. laptop (8500) at B (0.7) -> 5950."""
    base = Decimal(get_category(category_id).base_value_pence)
    value = base * grade_multiplier(grade)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def resale_line_total_pence(per_unit_pence: int, quantity: int) -> int:
    return per_unit_pence * quantity


def calculate_resale_value(category_id: str, grade: str, quantity: int) -> dict:
    per_unit = resale_value_per_unit_pence(category_id, grade)
    return {
        "category_id": category_id,
        "grade": grade,
        "quantity": quantity,
        "resale_value_per_unit_pence": per_unit,
        "resale_total_pence": resale_line_total_pence(per_unit, quantity),
    }


def estimate_buyback_pence(lines: Iterable) -> int:
    """Ungraded estimate: every unit at its category's base value."""
    return sum(
        get_category(category_id).base_value_pence * quantity
        for category_id, quantity in _line_pairs(lines)
    )


# -- CO2e --

def reuse_savings_kg(lines: Iterable) -> Decimal:
    total = sum(
        (get_category(category_id).co2e_per_unit_kg * quantity
         for category_id, quantity in _line_pairs(lines)),
        Decimal("0"),
    )
    return _quantize_kg(total)


def travel_emissions_kg(distance_km, fuel_type: str | None) -> Decimal:
    """
    Round-trip distance x emission factor for the fuel (or legacy vehicle) type.

    Electric is always zero. Unknown distance counts as zero.
    """
    if distance_km is None or fuel_type == "electric":
        return Decimal("0.00")
    return _quantize_kg(_to_decimal(distance_km) * emission_factor(fuel_type))


def net_benefit_kg(reuse_savings, travel_emissions) -> Decimal:
    return _to_decimal(reuse_savings) - _to_decimal(travel_emissions)


def equivalencies(net_benefit_kg_value) -> dict[str, int]:
    net = _to_decimal(net_benefit_kg_value)
    return {
        name: int((net / divisor).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        for name, divisor in EQUIVALENCY_DIVISORS.items()
    }


# -- DISTANCE --

def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def round_trip_distance_km(lat: float, lng: float) -> Decimal:
    """Straight-line site <-> warehouse distance, doubled."""
    one_way = haversine_km(lat, lng, WAREHOUSE_LAT, WAREHOUSE_LNG)
    return _quantize_kg(_to_decimal(one_way) * 2)


def km_to_miles(km) -> Decimal:
    return _quantize_kg(_to_decimal(km) * MILES_PER_KM)


def calculate_co2e(lines: Iterable, distance_km=None, fuel_type: str | None = None) -> dict:
    """
    Full CO2e breakdown for a set of asset lines and a trip.

    Travel emissions use `fuel_type` when given, else petrol.
    """
    lines = list(lines)
    reuse = reuse_savings_kg(lines)
    travel = travel_emissions_kg(distance_km, fuel_type or "petrol")
    net = net_benefit_kg(reuse, travel)
    distance = _quantize_kg(_to_decimal(distance_km)) if distance_km is not None else Decimal("0.00")

    return {
        "reuse_savings_kg": float(reuse),
        "travel_emissions_kg": float(travel),
        "net_benefit_kg": float(net),
        "distance_km": float(distance),
        "distance_miles": float(km_to_miles(distance)),
        "vehicle_emissions_kg": {
            fuel: float(travel_emissions_kg(distance_km, fuel)) for fuel in FUEL_TYPES
        },
        "equivalencies": equivalencies(net),
    }
