# backend/itad/routes/drivers.py
from flask import Blueprint, jsonify, request

from ..decorators import handle_lifecycle_errors, json_body
from ..services import driver_service


drivers_bp = Blueprint("drivers", __name__, url_prefix="/api/drivers")


@drivers_bp.post("")
@handle_lifecycle_errors
def create_driver_route():
    data = json_body()
    driver = driver_service.create_driver(
        data.get("name"),
        data.get("vehicle_reg"),
        vehicle_type=data.get("vehicle_type", "van"),
        vehicle_fuel_type=data.get("vehicle_fuel_type", "diesel"),
        phone=data.get("phone"),
    )
    return jsonify({"driver": driver.to_dict()}), 201


@drivers_bp.get("")
@handle_lifecycle_errors
def list_drivers_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    drivers = driver_service.list_drivers(include_inactive=include_inactive)
    return jsonify({"drivers": [d.to_dict() for d in drivers]}), 200


@drivers_bp.get("/<int:driver_id>")
@handle_lifecycle_errors
def get_driver_route(driver_id: int):
    return jsonify({"driver": driver_service.get_driver(driver_id).to_dict()}), 200


@drivers_bp.post("/<int:driver_id>/deactivate")
@handle_lifecycle_errors
def deactivate_driver_route(driver_id: int):
    driver = driver_service.deactivate_driver(driver_id)
    return jsonify({"driver": driver.to_dict()}), 200
