# backend/itad/routes/bookings.py
"""
Booking API routes

- POST  /api/bookings                        create a booking (status: created)
- GET   /api/bookings                        list (?status=&client_name=&limit=&offset=)
- GET   /api/bookings/:id                    booking with job, records and completion
- POST  /api/bookings/:id/assign-driver      created -> scheduled, creates the job
- PATCH /api/bookings/:id/status             admin status change
- POST  /api/bookings/:id/approve            completion gate, then booking + job -> completed
- GET   /api/bookings/:id/completion         {total, graded, sanitised, verified, ready}
- GET   /api/bookings/:id/timeline           lifecycle events, oldest first

Errors come back as {"error": ..., "code": ...}; see itad.errors for codes.
"""

from flask import Blueprint, jsonify, request

from ..decorators import actor_from_request, handle_lifecycle_errors, json_body
from ..errors import ValidationError
from ..services import lifecycle_service, timeline_service


bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/bookings")


def _require_int(data: dict, field: str) -> int:
    value = data.get(field)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} is required and must be an integer")
    return value


@bookings_bp.post("")
@handle_lifecycle_errors
def create_booking_route():
    """
    Request:
        {
            "site_info": {"site_name", "address", "postcode", "lat"?, "lng"?,
                          "round_trip_distance_km"?, "contact_name"?, "contact_phone"?},
            "assets": [{"category_id": "laptop", "quantity": 10}, ...],
            "scheduled_date": "2026-11-03",
            "charity_percent": 10,
            "client_name"?: "...",
            "preferred_vehicle_type"?: "petrol" | "diesel" | "electric"
        }
    """
    data = json_body()
    booking = lifecycle_service.create_booking(
        data.get("site_info") or {},
        data.get("assets", data.get("asset_lines")) or [],
        data.get("scheduled_date"),
        data.get("charity_percent", 0),
        client_name=data.get("client_name"),
        preferred_vehicle_type=data.get("preferred_vehicle_type"),
        created_by=actor_from_request(data),
    )
    return jsonify({"booking": booking.to_dict()}), 201


@bookings_bp.get("")
@handle_lifecycle_errors
def list_bookings_route():
    bookings = lifecycle_service.list_bookings(
        status=request.args.get("status"),
        client_name=request.args.get("client_name"),
        limit=request.args.get("limit", 100, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"bookings": [b.to_dict() for b in bookings]}), 200


@bookings_bp.get("/<int:booking_id>")
@handle_lifecycle_errors
def get_booking_route(booking_id: int):
    return jsonify({"booking": lifecycle_service.get_booking_detail(booking_id)}), 200


@bookings_bp.post("/<int:booking_id>/assign-driver")
@handle_lifecycle_errors
def assign_driver_route(booking_id: int):
    """
    Request: {"driver_id": 3}

    Error responses:
        404: booking or active driver not found
        409: booking is not in 'created' status (already scheduled, cancelled, ...)
    """
    data = json_body()
    booking = lifecycle_service.assign_driver(
        booking_id,
        _require_int(data, "driver_id"),
        scheduled_by=actor_from_request(data),
    )
    return jsonify({"booking": booking.to_dict(), "job": booking.job.to_dict()}), 200


@bookings_bp.patch("/<int:booking_id>/status")
@handle_lifecycle_errors
def update_booking_status_route(booking_id: int):
    """
    Request: {"status": "cancelled", "notes"?: "...", "expected_status"?: "scheduled"}
    """
    data = json_body()
    status = data.get("status")
    if not isinstance(status, str) or not status:
        raise ValidationError("status is required")

    booking = lifecycle_service.transition_booking_status(
        booking_id,
        status,
        data.get("notes"),
        actor=actor_from_request(data),
        expected_status=data.get("expected_status"),
    )
    return jsonify({"booking": booking.to_dict()}), 200


@bookings_bp.post("/<int:booking_id>/approve")
@handle_lifecycle_errors
def approve_booking_route(booking_id: int):
    """
    Error responses:
        409 gate_not_satisfied: body carries "completion" counts
        409 invalid_transition: booking not graded, or job cannot complete
    """
    data = json_body()
    booking = lifecycle_service.approve_booking(booking_id, approved_by=actor_from_request(data))
    return jsonify({
        "booking": booking.to_dict(),
        "job": booking.job.to_dict() if booking.job else None,
    }), 200


@bookings_bp.get("/<int:booking_id>/completion")
@handle_lifecycle_errors
def completion_route(booking_id: int):
    return jsonify(lifecycle_service.get_completion_status(booking_id)), 200


@bookings_bp.get("/<int:booking_id>/timeline")
@handle_lifecycle_errors
def timeline_route(booking_id: int):
    events = timeline_service.get_booking_timeline(booking_id)
    return jsonify({"events": [e.to_dict() for e in events]}), 200
