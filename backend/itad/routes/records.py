# backend/itad/routes/records.py
"""
Grading and sanitisation record routes (warehouse/ops)

- POST /api/grading                      {"booking_id", "asset_id", "grade", "condition"?, "notes"?}
- GET  /api/grading?booking_id=
- POST /api/sanitisation                 {"booking_id", "asset_id", "method", "method_details"?, "notes"?}
- GET  /api/sanitisation?booking_id=
- POST /api/sanitisation/:id/verify
"""

from flask import Blueprint, jsonify, request

from ..decorators import actor_from_request, handle_lifecycle_errors, json_body
from ..errors import ValidationError
from ..services import lifecycle_service, record_service


records_bp = Blueprint("records", __name__, url_prefix="/api")


def _booking_and_asset(data: dict) -> tuple[int, str]:
    booking_id = data.get("booking_id")
    asset_id = data.get("asset_id")
    if isinstance(booking_id, bool) or not isinstance(booking_id, int):
        raise ValidationError("booking_id is required and must be an integer")
    if not isinstance(asset_id, str) or not asset_id:
        raise ValidationError("asset_id is required")
    return booking_id, asset_id


@records_bp.post("/grading")
@handle_lifecycle_errors
def record_grade_route():
    data = json_body()
    booking_id, asset_id = _booking_and_asset(data)
    record = lifecycle_service.record_grade(
        booking_id,
        asset_id,
        data.get("grade"),
        condition=data.get("condition"),
        notes=data.get("notes"),
        graded_by=actor_from_request(data),
    )
    return jsonify({"record": record.to_dict()}), 201


@records_bp.get("/grading")
@handle_lifecycle_errors
def list_grading_route():
    records = record_service.list_grading_records(request.args.get("booking_id", type=int))
    return jsonify({"records": [r.to_dict() for r in records]}), 200


@records_bp.post("/sanitisation")
@handle_lifecycle_errors
def record_sanitisation_route():
    data = json_body()
    booking_id, asset_id = _booking_and_asset(data)
    record = lifecycle_service.record_sanitisation(
        booking_id,
        asset_id,
        data.get("method"),
        method_details=data.get("method_details"),
        notes=data.get("notes"),
        performed_by=actor_from_request(data),
    )
    return jsonify({"record": record.to_dict()}), 201


@records_bp.get("/sanitisation")
@handle_lifecycle_errors
def list_sanitisation_route():
    records = record_service.list_sanitisation_records(request.args.get("booking_id", type=int))
    return jsonify({"records": [r.to_dict() for r in records]}), 200


@records_bp.post("/sanitisation/<int:record_id>/verify")
@handle_lifecycle_errors
def verify_sanitisation_route(record_id: int):
    data = json_body()
    record = lifecycle_service.verify_sanitisation(record_id, verified_by=actor_from_request(data))
    return jsonify({"record": record.to_dict()}), 200
