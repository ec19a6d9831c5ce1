# backend/itad/routes/calculations.py
"""
Stateless calculators for the booking form and grading screen.

- GET  /api/catalog/categories
- POST /api/co2/calculate          {"assets", "distance_km"? | "lat"+"lng"?, "fuel_type"?}
- POST /api/buyback/calculate      {"assets"}
- GET  /api/grading/resale-value   ?category_id=&grade=&quantity=
"""

import math

from flask import Blueprint, jsonify, request

from ..catalog import ASSET_CATEGORIES, FUEL_TYPES, GRADES, SANITISATION_METHODS, get_category
from ..decorators import handle_lifecycle_errors, json_body
from ..errors import ValidationError
from ..services import lifecycle_service, value_service


calculations_bp = Blueprint("calculations", __name__, url_prefix="/api")


def _asset_lines(data: dict) -> list[dict]:
    lines = lifecycle_service.validate_asset_lines(data.get("assets") or [])
    return [{"category_id": category.id, "quantity": quantity} for category, quantity in lines]


def _distance_km(data: dict):
    distance = data.get("distance_km")
    if distance is not None:
        if isinstance(distance, bool) or not isinstance(distance, (int, float)):
            raise ValidationError("distance_km must be a non-negative number")
        # JSON NaN/Infinity parse as floats
        if not math.isfinite(distance) or distance < 0:
            raise ValidationError("distance_km must be a non-negative number")
        return distance

    lat, lng = data.get("lat"), data.get("lng")
    if lat is None or lng is None:
        return None
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v) for v in (lat, lng)):
        raise ValidationError("lat and lng must be finite numbers")
    return value_service.round_trip_distance_km(lat, lng)


@calculations_bp.get("/catalog/categories")
def list_categories_route():
    return jsonify({
        "categories": [c.to_dict() for c in ASSET_CATEGORIES.values()],
        "grades": list(GRADES),
        "sanitisation_methods": list(SANITISATION_METHODS),
        "fuel_types": list(FUEL_TYPES),
    }), 200


@calculations_bp.post("/co2/calculate")
@handle_lifecycle_errors
def calculate_co2_route():
    data = json_body()
    fuel_type = data.get("fuel_type")
    if fuel_type is not None and fuel_type not in FUEL_TYPES:
        raise ValidationError(f"fuel_type must be one of: {', '.join(FUEL_TYPES)}")

    result = value_service.calculate_co2e(_asset_lines(data), _distance_km(data), fuel_type)
    return jsonify(result), 200


@calculations_bp.post("/buyback/calculate")
@handle_lifecycle_errors
def calculate_buyback_route():
    data = json_body()
    lines = _asset_lines(data)
    return jsonify({
        "lines": [
            {**line, "base_value_pence": get_category(line["category_id"]).base_value_pence}
            for line in lines
        ],
        "estimated_buyback_pence": value_service.estimate_buyback_pence(lines),
    }), 200


@calculations_bp.get("/grading/resale-value")
@handle_lifecycle_errors
def resale_value_route():
    category_id = request.args.get("category_id")
    grade = request.args.get("grade")
    quantity = request.args.get("quantity", 1, type=int)
    if not category_id or not grade:
        raise ValidationError("category_id and grade are required")
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be greater than zero")

    get_category(category_id)
    return jsonify(value_service.calculate_resale_value(category_id, grade, quantity)), 200
