from decimal import Decimal

import pytest

from conftest import EVIDENCE, drive_to, grade_all, make_booking, sanitise_all
from itad.errors import (
    EvidenceAlreadyExists,
    EvidenceRequired,
    GateNotSatisfied,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from itad.models import Job, JobEvidence, LifecycleEvent
from itad.services import driver_service, lifecycle_service, timeline_service


def _event_types(booking_id):
    return [e.event_type for e in timeline_service.get_booking_timeline(booking_id)]


# -- create_booking --

def test_create_booking_computes_estimates(booking):
    assert booking.status == "created"
    assert booking.booking_number.startswith("BK-")
    assert booking.booking_number.endswith("-0001")
    assert booking.postcode == "EC1A 1BB"
    assert booking.estimated_co2e_kg == Decimal("5900.00")
    assert booking.estimated_buyback_pence == 135000
    assert booking.round_trip_distance_km == Decimal("80.00")
    assert booking.round_trip_distance_miles == Decimal("49.71")
    assert [(l.category_id, l.quantity) for l in booking.asset_lines] == [("laptop", 10), ("server", 2)]
    assert _event_types(booking.id) == ["booking.created"]


def test_create_booking_numbers_are_sequential(db_session):
    first = make_booking()
    second = make_booking()
    assert first.booking_number[-4:] == "0001"
    assert second.booking_number[-4:] == "0002"


def test_create_booking_distance_from_coordinates(db_session):
    booking = make_booking(site_info={
        "site_name": "Westminster",
        "address": "SW1A 2AA",
        "postcode": "SW1A 2AA",
        "lat": 51.5074,
        "lng": -0.1278,
    })
    assert Decimal("40") < booking.round_trip_distance_km < Decimal("50")
    assert booking.site_lat == pytest.approx(51.5074)


def test_create_booking_without_location_has_unknown_distance(db_session):
    booking = make_booking(site_info={"site_name": "X", "address": "Y", "postcode": "Z1 1ZZ"})
    assert booking.round_trip_distance_km is None
    assert booking.round_trip_distance_miles is None


@pytest.mark.parametrize("lines", [
    [],
    [{"category_id": "laptop", "quantity": 0}],
    [{"category_id": "laptop", "quantity": -2}],
    [{"category_id": "laptop", "quantity": 1.5}],
    [{"category_id": "toaster", "quantity": 1}],
    [{"category_id": "laptop", "quantity": 1}, {"category_id": "laptop", "quantity": 2}],
])
def test_create_booking_rejects_bad_asset_lines(db_session, lines):
    with pytest.raises(ValidationError):
        make_booking(asset_lines=lines)


def test_create_booking_rejects_bad_charity_percent(db_session):
    with pytest.raises(ValidationError):
        make_booking(charity_percent=101)


def test_create_booking_rejects_bad_date(db_session):
    with pytest.raises(ValidationError):
        make_booking(scheduled_date="03/11/2026")


def test_create_booking_requires_site_fields(db_session):
    with pytest.raises(ValidationError):
        make_booking(site_info={"site_name": "X", "address": "Y"})


# -- assign_driver --

def test_assign_driver_creates_routed_job(scheduled_booking, driver):
    booking = scheduled_booking
    assert booking.status == "scheduled"
    assert booking.scheduled_at is not None
    assert booking.driver_id == driver.id
    assert booking.scheduled_by == "ops@test"

    job = booking.job
    assert job.id == booking.job_id
    assert job.status == "routed"
    assert job.driver_name == "Sam Carter"
    assert job.vehicle_reg == "AB12 CDE"
    assert [(a.category_id, a.quantity) for a in job.assets] == [("laptop", 10), ("server", 2)]
    # 80 km x diesel 0.19
    assert job.travel_emissions_kg == Decimal("15.20")
    assert job.co2e_saved_kg == Decimal("5900.00")
    assert job.journey_details == {}
    assert _event_types(booking.id) == ["booking.created", "job.created", "booking.scheduled"]


def test_assign_driver_twice_creates_one_job(scheduled_booking, driver):
    with pytest.raises(InvalidTransition):
        lifecycle_service.assign_driver(scheduled_booking.id, driver.id)
    assert Job.query.filter_by(booking_id=scheduled_booking.id).count() == 1


def test_assign_driver_unknown_driver(booking):
    with pytest.raises(NotFound):
        lifecycle_service.assign_driver(booking.id, 9999)
    assert lifecycle_service.get_booking(booking.id).status == "created"


def test_assign_inactive_driver_is_not_found(booking, driver):
    driver_service.deactivate_driver(driver.id)
    with pytest.raises(NotFound):
        lifecycle_service.assign_driver(booking.id, driver.id)


def test_assign_driver_unknown_booking(driver):
    with pytest.raises(NotFound):
        lifecycle_service.assign_driver(9999, driver.id)


def test_electric_driver_has_zero_travel_emissions(booking):
    ev_driver = driver_service.create_driver("Lee", "EV01 AAA", "van", "electric")
    booking = lifecycle_service.assign_driver(booking.id, ev_driver.id)
    assert booking.job.travel_emissions_kg == Decimal("0.00")


# -- job transitions & evidence --

def test_job_transition_without_evidence_fails(scheduled_booking):
    with pytest.raises(EvidenceRequired):
        lifecycle_service.transition_job_status(scheduled_booking.job_id, "en-route")
    assert lifecycle_service.get_job(scheduled_booking.job_id).status == "routed"


def test_evidence_then_transition(scheduled_booking):
    job_id = scheduled_booking.job_id
    lifecycle_service.submit_job_evidence(job_id, "en-route", EVIDENCE)
    job = lifecycle_service.transition_job_status(job_id, "en-route")
    assert job.status == "en-route"
    assert [e.status for e in job.evidence] == ["en-route"]


def test_duplicate_evidence_is_rejected_and_original_kept(scheduled_booking):
    job_id = scheduled_booking.job_id
    lifecycle_service.submit_job_evidence(job_id, "en-route", EVIDENCE)
    with pytest.raises(EvidenceAlreadyExists):
        lifecycle_service.submit_job_evidence(job_id, "en-route", {
            "photos": ["other.jpg"],
            "signature": "other.png",
        })
    entry = JobEvidence.query.filter_by(job_id=job_id, status="en-route").one()
    assert entry.photos == ["photos/site-1.jpg"]
    assert entry.signature == "signatures/driver-1.png"


def test_evidence_requires_photo_and_signature(scheduled_booking):
    with pytest.raises(ValidationError):
        lifecycle_service.submit_job_evidence(scheduled_booking.job_id, "en-route", {"signature": "s.png"})
    with pytest.raises(ValidationError):
        lifecycle_service.submit_job_evidence(scheduled_booking.job_id, "en-route", {"photos": ["p.jpg"]})
    assert JobEvidence.query.count() == 0


def test_advance_job_is_all_or_nothing(scheduled_booking):
    job_id = scheduled_booking.job_id
    # 'arrived' is not reachable from 'routed'; evidence must not be kept either
    with pytest.raises(InvalidTransition):
        lifecycle_service.advance_job(job_id, "arrived", EVIDENCE)
    assert JobEvidence.query.filter_by(job_id=job_id).count() == 0
    assert lifecycle_service.get_job(job_id).status == "routed"


def test_advance_job_rolls_back_evidence_when_transition_fails(collected_booking):
    job_id = collected_booking.job_id
    lifecycle_service.advance_job(job_id, "sanitised")
    lifecycle_service.advance_job(job_id, "graded")
    with pytest.raises(GateNotSatisfied):
        lifecycle_service.advance_job(job_id, "completed", {"photos": ["handover.jpg"], "signature": "s.png"})
    assert JobEvidence.query.filter_by(job_id=job_id, status="completed").count() == 0
    assert lifecycle_service.get_job(job_id).status == "graded"


def test_advance_job_retry_after_evidence_only(scheduled_booking):
    job_id = scheduled_booking.job_id
    lifecycle_service.submit_job_evidence(job_id, "en-route", EVIDENCE)
    # Re-sending the evidence is refused; retrying without it completes the move
    with pytest.raises(EvidenceAlreadyExists):
        lifecycle_service.advance_job(job_id, "en-route", EVIDENCE)
    assert lifecycle_service.advance_job(job_id, "en-route").status == "en-route"


def test_expected_status_mismatch_is_invalid_transition(scheduled_booking):
    with pytest.raises(InvalidTransition):
        lifecycle_service.advance_job(scheduled_booking.job_id, "en-route", EVIDENCE, expected_status="booked")


def test_job_collected_syncs_booking(scheduled_booking):
    job = drive_to(scheduled_booking.job_id, "collected")
    booking = lifecycle_service.get_booking(scheduled_booking.id)
    assert job.status == "collected"
    assert booking.status == "collected"
    assert booking.collected_at is not None


def test_job_warehouse_leaves_booking_collected(collected_booking):
    job = lifecycle_service.get_job(collected_booking.job_id)
    assert job.status == "warehouse"
    assert collected_booking.status == "collected"


def test_job_sanitised_and_graded_sync_booking(graded_booking):
    assert graded_booking.status == "graded"
    assert graded_booking.sanitised_at is not None
    assert graded_booking.graded_at is not None
    types = _event_types(graded_booking.id)
    assert "booking.sanitised" in types
    assert "booking.graded" in types


def test_job_completed_requires_gate(collected_booking):
    job_id = collected_booking.job_id
    lifecycle_service.advance_job(job_id, "sanitised")
    lifecycle_service.advance_job(job_id, "graded")
    with pytest.raises(GateNotSatisfied):
        lifecycle_service.transition_job_status(job_id, "completed")
    assert lifecycle_service.get_job(job_id).status == "graded"


def test_job_completed_with_gate_completes_booking(graded_booking):
    job = lifecycle_service.transition_job_status(graded_booking.job_id, "completed", actor="ops@test")
    booking = lifecycle_service.get_booking(graded_booking.id)
    assert job.status == "completed"
    assert booking.status == "completed"
    assert booking.completed_by == "ops@test"


def test_job_cancel_cascades_to_booking(scheduled_booking):
    lifecycle_service.transition_job_status(scheduled_booking.job_id, "cancelled")
    booking = lifecycle_service.get_booking(scheduled_booking.id)
    assert booking.status == "cancelled"
    assert booking.cancelled_at is not None


def test_evidence_on_cancelled_job_rejected(scheduled_booking):
    lifecycle_service.transition_job_status(scheduled_booking.job_id, "cancelled")
    with pytest.raises(InvalidTransition):
        lifecycle_service.submit_job_evidence(scheduled_booking.job_id, "en-route", EVIDENCE)


def test_resubmitting_evidence_after_cancel_is_still_a_duplicate(scheduled_booking):
    job_id = scheduled_booking.job_id
    lifecycle_service.advance_job(job_id, "en-route", EVIDENCE)
    lifecycle_service.transition_job_status(job_id, "cancelled")
    with pytest.raises(EvidenceAlreadyExists):
        lifecycle_service.submit_job_evidence(job_id, "en-route", EVIDENCE)


def test_non_string_status_is_validation_error(scheduled_booking):
    with pytest.raises(ValidationError):
        lifecycle_service.transition_job_status(scheduled_booking.job_id, ["en-route"])
    with pytest.raises(ValidationError):
        lifecycle_service.advance_job(scheduled_booking.job_id, "en-route", EVIDENCE, expected_status=["routed"])
    with pytest.raises(ValidationError):
        lifecycle_service.transition_booking_status(scheduled_booking.id, "cancelled", expected_status=["scheduled"])
    assert lifecycle_service.get_job(scheduled_booking.job_id).status == "routed"


def test_unknown_job(db_session):
    with pytest.raises(NotFound):
        lifecycle_service.transition_job_status(12345, "en-route")


# -- booking transitions --

def test_booking_cannot_be_scheduled_directly(booking):
    with pytest.raises(InvalidTransition):
        lifecycle_service.transition_booking_status(booking.id, "scheduled")


def test_booking_cannot_skip_to_collected(booking):
    with pytest.raises(InvalidTransition):
        lifecycle_service.transition_booking_status(booking.id, "collected")


def test_cancel_created_booking(booking):
    booking = lifecycle_service.transition_booking_status(booking.id, "cancelled", "Duplicate request")
    assert booking.status == "cancelled"
    assert booking.cancellation_notes == "Duplicate request"


def test_booking_cancel_cascades_to_job(scheduled_booking):
    lifecycle_service.transition_booking_status(scheduled_booking.id, "cancelled", "Site closed")
    job = lifecycle_service.get_job(scheduled_booking.job_id)
    assert job.status == "cancelled"
    assert job.cancelled_at is not None


def test_cancelled_booking_is_terminal(booking):
    lifecycle_service.transition_booking_status(booking.id, "cancelled")
    with pytest.raises(InvalidTransition):
        lifecycle_service.transition_booking_status(booking.id, "cancelled")


def test_booking_sanitised_moves_warehouse_job(collected_booking):
    lifecycle_service.transition_booking_status(collected_booking.id, "sanitised")
    assert lifecycle_service.get_job(collected_booking.job_id).status == "sanitised"


def test_booking_completed_goes_through_gate(collected_booking):
    lifecycle_service.transition_booking_status(collected_booking.id, "sanitised")
    lifecycle_service.transition_booking_status(collected_booking.id, "graded")
    with pytest.raises(GateNotSatisfied):
        lifecycle_service.transition_booking_status(collected_booking.id, "completed")


# -- records --

def test_grading_needs_sanitised_booking(collected_booking):
    with pytest.raises(InvalidTransition):
        lifecycle_service.record_grade(collected_booking.id, "laptop", "A")


def test_sanitisation_needs_collected_booking(scheduled_booking):
    with pytest.raises(InvalidTransition):
        lifecycle_service.record_sanitisation(scheduled_booking.id, "laptop", "blancco")


def test_sanitisation_record_gets_certificate(collected_booking):
    record = lifecycle_service.record_sanitisation(
        collected_booking.id, "laptop", "physical-destruction", method_details="Shredded on site",
    )
    assert record.certificate_id.startswith("SAN-")
    assert record.certificate_url == f"https://certs.test/sanitisation/{record.certificate_id}.pdf"
    assert record.verified is False


def test_sanitisation_unknown_asset_line(collected_booking):
    with pytest.raises(NotFound):
        lifecycle_service.record_sanitisation(collected_booking.id, "printer", "blancco")


def test_sanitisation_unknown_method(collected_booking):
    with pytest.raises(ValidationError):
        lifecycle_service.record_sanitisation(collected_booking.id, "laptop", "microwave")


def test_verify_is_idempotent(collected_booking):
    record = lifecycle_service.record_sanitisation(collected_booking.id, "laptop", "blancco")
    first = lifecycle_service.verify_sanitisation(record.id, verified_by="qa1")
    verified_at = first.verified_at
    second = lifecycle_service.verify_sanitisation(record.id, verified_by="qa2")
    assert second.verified is True
    assert second.verified_at == verified_at
    assert second.verified_by == "qa1"
    assert _event_types(collected_booking.id).count("sanitisation.verified") == 1


def test_verify_unknown_record(db_session):
    with pytest.raises(NotFound):
        lifecycle_service.verify_sanitisation(4242)


def test_grade_computes_resale_value(collected_booking):
    lifecycle_service.transition_booking_status(collected_booking.id, "sanitised")
    record = lifecycle_service.record_grade(collected_booking.id, "laptop", "B", condition="Light scuffs")
    assert record.resale_value_per_unit_pence == 5950
    assert record.resale_total_pence == 59500
    assert record.revision == 1


def test_regrade_overwrites_and_bumps_revision(collected_booking):
    lifecycle_service.transition_booking_status(collected_booking.id, "sanitised")
    lifecycle_service.record_grade(collected_booking.id, "laptop", "B")
    record = lifecycle_service.record_grade(collected_booking.id, "laptop", "A")
    assert record.grade == "A"
    assert record.revision == 2
    assert record.resale_value_per_unit_pence == 8500
    assert len(lifecycle_service.get_booking_records(collected_booking.id)["grading_records"]) == 1
    notes = [e.note for e in LifecycleEvent.query.filter_by(event_type="grading.revised")]
    assert notes == ["laptop: B -> A"]


# -- completion gate & approval --

def test_completion_status_counts(collected_booking):
    sanitise_all(collected_booking.id, asset_ids=("laptop",))
    lifecycle_service.record_sanitisation(collected_booking.id, "server", "degaussing")
    status = lifecycle_service.get_completion_status(collected_booking.id)
    assert status == {"total": 2, "graded": 0, "sanitised": 2, "verified": 1, "ready": False}


def test_approve_fails_when_one_category_unverified(collected_booking):
    booking_id = collected_booking.id
    sanitise_all(booking_id, asset_ids=("laptop",))
    sanitise_all(booking_id, asset_ids=("server",), verify=False)
    lifecycle_service.transition_booking_status(booking_id, "sanitised")
    grade_all(booking_id)
    lifecycle_service.transition_booking_status(booking_id, "graded")

    with pytest.raises(GateNotSatisfied) as exc:
        lifecycle_service.approve_booking(booking_id)
    assert exc.value.completion["verified"] == 1
    assert lifecycle_service.get_booking(booking_id).status == "graded"


def test_approve_fails_if_any_record_for_a_line_is_unverified(graded_booking):
    # A later partial batch that has not been verified reopens the gate
    lifecycle_service.record_sanitisation(graded_booking.id, "laptop", "shredding")
    assert lifecycle_service.evaluate_completion_gate(lifecycle_service.get_booking(graded_booking.id)) is False
    with pytest.raises(GateNotSatisfied):
        lifecycle_service.approve_booking(graded_booking.id)


def test_approve_completes_booking_and_job(graded_booking):
    booking = lifecycle_service.approve_booking(graded_booking.id, approved_by="manager@test")
    assert booking.status == "completed"
    assert booking.completed_at is not None
    assert booking.completed_by == "manager@test"
    job = lifecycle_service.get_job(graded_booking.job_id)
    assert job.status == "completed"
    assert job.completed_at is not None


def test_approve_twice_is_invalid_transition(graded_booking):
    lifecycle_service.approve_booking(graded_booking.id)
    with pytest.raises(InvalidTransition):
        lifecycle_service.approve_booking(graded_booking.id)


def test_approve_is_all_or_nothing_when_job_cannot_complete(scheduled_booking):
    # Admin moves the booking along while the job never left 'routed'
    booking_id = scheduled_booking.id
    lifecycle_service.transition_booking_status(booking_id, "collected")
    sanitise_all(booking_id)
    lifecycle_service.transition_booking_status(booking_id, "sanitised")
    grade_all(booking_id)
    lifecycle_service.transition_booking_status(booking_id, "graded")
    assert lifecycle_service.get_job(scheduled_booking.job_id).status == "routed"

    with pytest.raises(InvalidTransition):
        lifecycle_service.approve_booking(booking_id)
    booking = lifecycle_service.get_booking(booking_id)
    assert booking.status == "graded"
    assert booking.completed_at is None


def test_records_allowed_after_completion(graded_booking):
    lifecycle_service.approve_booking(graded_booking.id)
    record = lifecycle_service.record_grade(graded_booking.id, "server", "C")
    assert record.revision == 2


# -- journey details --

def test_journey_details_editable_before_departure(scheduled_booking):
    job = lifecycle_service.update_journey_details(scheduled_booking.job_id, {
        "security_requirements": "Sign in at reception",
        "id_required": "Photo ID",
    })
    assert job.journey_details["security_requirements"] == "Sign in at reception"
    job = lifecycle_service.update_journey_details(scheduled_booking.job_id, {"door_lift_size": "2m"})
    assert set(job.journey_details) == {"security_requirements", "id_required", "door_lift_size"}


def test_journey_details_locked_once_en_route(scheduled_booking):
    lifecycle_service.advance_job(scheduled_booking.job_id, "en-route", EVIDENCE)
    with pytest.raises(InvalidTransition):
        lifecycle_service.update_journey_details(scheduled_booking.job_id, {"id_required": "None"})


def test_journey_details_unknown_field(scheduled_booking):
    with pytest.raises(ValidationError):
        lifecycle_service.update_journey_details(scheduled_booking.job_id, {"parking": "yes"})


# -- timeline --

def test_failed_operation_leaves_no_event(scheduled_booking):
    before = _event_types(scheduled_booking.id)
    with pytest.raises(EvidenceRequired):
        lifecycle_service.transition_job_status(scheduled_booking.job_id, "en-route")
    assert _event_types(scheduled_booking.id) == before


def test_timeline_unknown_booking(db_session):
    with pytest.raises(NotFound):
        timeline_service.get_booking_timeline(777)


def test_timeline_module_documents_its_invariants():
    assert "Append-only" in timeline_service.__doc__
