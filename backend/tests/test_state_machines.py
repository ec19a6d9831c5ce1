from types import SimpleNamespace

import pytest

from itad.errors import EvidenceRequired, InvalidTransition, ValidationError
from itad.services import booking_state, job_state


def _booking(status="created"):
    return SimpleNamespace(
        booking_number="BK-TEST-0001",
        status=status,
        scheduled_at=None,
        collected_at=None,
        sanitised_at=None,
        graded_at=None,
        completed_at=None,
        cancelled_at=None,
        cancellation_notes=None,
    )


class _Evidence:
    def __init__(self, status, photos=("p.jpg",), signature="sig.png"):
        self.status = status
        self.photos = list(photos)
        self.signature = signature

    def has_proof(self):
        return bool(self.photos) and bool(self.signature)


class _Job:
    def __init__(self, status="booked", evidence=()):
        self.job_number = "JOB-TEST-0001"
        self.status = status
        self.evidence = list(evidence)
        self.completed_at = None
        self.cancelled_at = None

    def evidence_for(self, status):
        for entry in self.evidence:
            if entry.status == status:
                return entry
        return None


# -- Booking --

def test_booking_happy_path_stamps_each_timestamp_once():
    booking = _booking()
    for status in ("scheduled", "collected", "sanitised", "graded", "completed"):
        booking_state.transition(booking, status)
        assert getattr(booking, f"{status}_at") is not None
    assert booking.status == "completed"


def test_booking_cannot_skip_states():
    booking = _booking()
    with pytest.raises(InvalidTransition) as exc:
        booking_state.transition(booking, "collected")
    assert exc.value.current_status == "created"
    assert booking.status == "created"


def test_booking_cannot_move_backwards():
    booking = _booking("graded")
    with pytest.raises(InvalidTransition):
        booking_state.transition(booking, "sanitised")


@pytest.mark.parametrize("terminal", ["completed", "cancelled"])
def test_booking_terminal_states_accept_nothing(terminal):
    booking = _booking(terminal)
    assert booking_state.next_statuses(terminal) == []
    with pytest.raises(InvalidTransition):
        booking_state.transition(booking, terminal)
    with pytest.raises(InvalidTransition):
        booking_state.transition(booking, "cancelled")


def test_booking_cancel_from_any_non_terminal_state():
    for status in ("created", "scheduled", "collected", "sanitised", "graded"):
        booking = _booking(status)
        booking_state.transition(booking, "cancelled", notes="Client called off")
        assert booking.status == "cancelled"
        assert booking.cancelled_at is not None
        assert booking.cancellation_notes == "Client called off"


def test_booking_next_statuses():
    assert booking_state.next_statuses("created") == ["scheduled", "cancelled"]
    assert booking_state.next_statuses("graded") == ["completed", "cancelled"]


def test_booking_unknown_status_is_validation_error():
    with pytest.raises(ValidationError):
        booking_state.transition(_booking(), "lost")


# -- Job --

def test_job_booked_can_go_routed_or_straight_en_route():
    assert job_state.next_statuses("booked") == ["routed", "en-route", "cancelled"]


def test_job_en_route_requires_evidence():
    job = _Job("routed")
    with pytest.raises(EvidenceRequired):
        job_state.transition(job, "en-route")
    assert job.status == "routed"


def test_job_evidence_without_signature_does_not_satisfy_gate():
    job = _Job("en-route", evidence=[_Evidence("arrived", signature=None)])
    with pytest.raises(EvidenceRequired):
        job_state.transition(job, "arrived")


def test_job_evidence_for_other_status_does_not_count():
    job = _Job("routed", evidence=[_Evidence("arrived")])
    with pytest.raises(EvidenceRequired):
        job_state.transition(job, "en-route")


def test_job_transition_with_evidence():
    job = _Job("routed", evidence=[_Evidence("en-route")])
    job_state.transition(job, "en-route")
    assert job.status == "en-route"


def test_job_accepts_underscore_alias():
    job = _Job("routed", evidence=[_Evidence("en-route")])
    job_state.transition(job, "en_route")
    assert job.status == "en-route"


def test_job_ops_statuses_need_no_evidence():
    job = _Job("warehouse")
    job_state.transition(job, "sanitised")
    job_state.transition(job, "graded")
    job_state.transition(job, "completed")
    assert job.completed_at is not None


def test_job_cannot_skip_states():
    job = _Job("routed", evidence=[_Evidence("arrived")])
    with pytest.raises(InvalidTransition):
        job_state.transition(job, "arrived")


def test_job_cancel_is_not_evidence_gated():
    job = _Job("arrived")
    job_state.transition(job, "cancelled")
    assert job.status == "cancelled"
    assert job.cancelled_at is not None
    assert job_state.next_statuses("cancelled") == []


def test_normalize_evidence_accepts_camel_case_and_single_photo():
    fields = job_state.normalize_evidence({
        "photos": "photo.jpg",
        "signature": " sig.png ",
        "sealNumbers": ["S1", "S2"],
    })
    assert fields == {
        "photos": ["photo.jpg"],
        "signature": "sig.png",
        "seal_numbers": ["S1", "S2"],
        "notes": None,
    }


def test_normalize_evidence_rejects_bad_types():
    with pytest.raises(ValidationError):
        job_state.normalize_evidence({"photos": [1, 2]})
    with pytest.raises(ValidationError):
        job_state.normalize_evidence({"signature": 5})
