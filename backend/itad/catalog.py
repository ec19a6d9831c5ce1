# Overview: Static asset catalog and emission reference data.
# Each category is defined as: (id, name, co2e_per_unit_kg, avg_weight_kg, base_value_pence)

"""
Read-only reference data for the lifecycle service.

Nothing here is ever mutated at runtime, so it is shared between requests
and threads without locking. Values are Decimal so that CO2e and resale
arithmetic stays exact until the single rounding step in value_service.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType

from .errors import ValidationError


@dataclass(frozen=True)
class AssetCategory:
    id: str
    name: str
    co2e_per_unit_kg: Decimal
    avg_weight_kg: Decimal
    base_value_pence: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "co2e_per_unit_kg": float(self.co2e_per_unit_kg),
            "avg_weight_kg": float(self.avg_weight_kg),
            "base_value_pence": self.base_value_pence,
        }


# -- ASSET CATEGORIES --

_CATEGORY_ROWS = [
    ("laptop", "Laptops", "350", "2.5", 8500),
    ("desktop", "Desktops", "450", "8", 4500),
    ("monitor", "Monitors", "280", "5", 2500),
    ("server", "Servers", "1200", "25", 25000),
    ("phone", "Mobile Phones", "70", "0.2", 4000),
    ("tablet", "Tablets", "120", "0.5", 5500),
    ("printer", "Printers", "180", "12", 1500),
    ("network", "Network Equipment", "95", "3", 3500),
]

ASSET_CATEGORIES = MappingProxyType({
    row[0]: AssetCategory(
        id=row[0],
        name=row[1],
        co2e_per_unit_kg=Decimal(row[2]),
        avg_weight_kg=Decimal(row[3]),
        base_value_pence=row[4],
    )
    for row in _CATEGORY_ROWS
})


# -- GRADING --

GRADES = ("A", "B", "C", "D", "Recycled")

GRADE_MULTIPLIERS = MappingProxyType({
    "A": Decimal("1.0"),
    "B": Decimal("0.7"),
    "C": Decimal("0.4"),
    "D": Decimal("0.2"),
    "Recycled": Decimal("0"),
})


# -- SANITISATION --

SANITISATION_METHODS = (
    "blancco",
    "physical-destruction",
    "degaussing",
    "shredding",
    "other",
)


# -- VEHICLES --

VEHICLE_TYPES = ("van", "truck", "car")
FUEL_TYPES = ("petrol", "diesel", "electric")

# kg CO2e per km driven
EMISSION_FACTORS_KG_PER_KM = MappingProxyType({
    "petrol": Decimal("0.21"),
    "diesel": Decimal("0.19"),
    "electric": Decimal("0"),
    # Legacy vehicle-type keys, still sent by older booking clients
    "car": Decimal("0.17"),
    "van": Decimal("0.24"),
    "truck": Decimal("0.89"),
})
DEFAULT_FUEL_TYPE = "petrol"


# -- CO2e EQUIVALENCIES (kg CO2e per unit) --

EQUIVALENCY_DIVISORS = MappingProxyType({
    "trees_planted": Decimal("21"),     # one tree absorbs ~21kg/year
    "household_days": Decimal("27"),    # UK household ~27kg/day
    "car_miles": Decimal("0.21"),
    "flight_hours": Decimal("250"),
})


# -- WAREHOUSE (RM13 8BT, Rainham) --

WAREHOUSE_POSTCODE = "RM13 8BT"
WAREHOUSE_LAT = 51.5174
WAREHOUSE_LNG = 0.1904


def get_category(category_id: str) -> AssetCategory:
    """Look up a category, raising ValidationError for unknown ids."""
    category = ASSET_CATEGORIES.get(category_id)
    if category is None:
        raise ValidationError(
            f"Unknown asset category '{category_id}'. "
            f"Must be one of: {', '.join(sorted(ASSET_CATEGORIES))}"
        )
    return category


def emission_factor(fuel_type: str | None) -> Decimal:
    """kg CO2e per km for a fuel (or legacy vehicle) type; unknown falls back to petrol."""
    if not fuel_type:
        return EMISSION_FACTORS_KG_PER_KM[DEFAULT_FUEL_TYPE]
    return EMISSION_FACTORS_KG_PER_KM.get(fuel_type, EMISSION_FACTORS_KG_PER_KM[DEFAULT_FUEL_TYPE])


def validate_grade(grade: str) -> str:
    if not isinstance(grade, str) or grade not in GRADE_MULTIPLIERS:
        raise ValidationError(f"Invalid grade '{grade}'. Must be one of: {', '.join(GRADES)}")
    return grade


def validate_sanitisation_method(method: str) -> str:
    if not isinstance(method, str) or method not in SANITISATION_METHODS:
        raise ValidationError(
            f"Invalid sanitisation method '{method}'. "
            f"Must be one of: {', '.join(SANITISATION_METHODS)}"
        )
    return method
