from flask import Blueprint, jsonify, request

from ..decorators import handle_lifecycle_errors
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/impact")
@handle_lifecycle_errors
def impact_report():
    report = reporting_service.get_impact_summary(client_name=request.args.get("client_name"))
    return jsonify(report), 200
