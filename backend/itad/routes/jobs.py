# backend/itad/routes/jobs.py
"""
Job API routes (driver app)

- GET   /api/jobs                    list (?status=&driver_id=)
- GET   /api/jobs/:id                job with evidence
- PATCH /api/jobs/:id/status         {"status", "evidence"?, "expected_status"?}
- POST  /api/jobs/:id/evidence       {"status", "photos", "signature", "seal_numbers"?, "notes"?}
- PATCH /api/jobs/:id/journey        site access notes (booked/routed only)

PATCH .../status with "evidence" stores the evidence and moves the job in one
transaction; if either half fails nothing is saved.
"""

from flask import Blueprint, jsonify, request

from ..decorators import actor_from_request, handle_lifecycle_errors, json_body
from ..errors import ValidationError
from ..services import job_state, lifecycle_service


jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/jobs")


def _evidence_payload(raw):
    # Older driver app builds send a one-element list
    if isinstance(raw, list):
        if len(raw) != 1:
            raise ValidationError("evidence must be a single object")
        raw = raw[0]
    if not isinstance(raw, dict):
        raise ValidationError("evidence must be an object")
    return raw


@jobs_bp.get("")
@handle_lifecycle_errors
def list_jobs_route():
    jobs = lifecycle_service.list_jobs(
        status=request.args.get("status"),
        driver_id=request.args.get("driver_id", type=int),
        limit=request.args.get("limit", 100, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"jobs": [j.to_dict() for j in jobs]}), 200


@jobs_bp.get("/<int:job_id>")
@handle_lifecycle_errors
def get_job_route(job_id: int):
    job = lifecycle_service.get_job(job_id)
    payload = job.to_dict()
    payload["next_statuses"] = job_state.next_statuses(job.status)
    return jsonify({"job": payload}), 200


@jobs_bp.patch("/<int:job_id>/status")
@handle_lifecycle_errors
def update_job_status_route(job_id: int):
    """
    Error responses:
        409 evidence_required: en-route/arrived/collected/warehouse without evidence
        409 evidence_already_exists: evidence sent for a status that already has it
        409 gate_not_satisfied: 'completed' before grading/sanitisation is done
        409 invalid_transition: not reachable, or changed by another request
    """
    data = json_body()
    status = data.get("status")
    if not isinstance(status, str) or not status:
        raise ValidationError("status is required")

    actor = actor_from_request(data)
    if data.get("evidence") is not None:
        job = lifecycle_service.advance_job(
            job_id,
            status,
            _evidence_payload(data["evidence"]),
            actor=actor,
            expected_status=data.get("expected_status"),
        )
    else:
        job = lifecycle_service.transition_job_status(
            job_id,
            status,
            actor=actor,
            expected_status=data.get("expected_status"),
        )
    return jsonify({"job": job.to_dict()}), 200


@jobs_bp.post("/<int:job_id>/evidence")
@handle_lifecycle_errors
def submit_evidence_route(job_id: int):
    data = json_body()
    status = data.get("status")
    if not isinstance(status, str) or not status:
        raise ValidationError("status is required")

    job = lifecycle_service.submit_job_evidence(job_id, status, data, actor=actor_from_request(data))
    return jsonify({"job": job.to_dict()}), 201


@jobs_bp.patch("/<int:job_id>/journey")
@handle_lifecycle_errors
def update_journey_route(job_id: int):
    data = json_body()
    job = lifecycle_service.update_journey_details(job_id, data)
    return jsonify({"job": job.to_dict()}), 200
