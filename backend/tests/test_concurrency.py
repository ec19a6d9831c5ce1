"""
Threaded races against a file-backed SQLite database.

Each worker runs in its own app context (and so its own session). SQLite
ignores FOR UPDATE, so these exercise the version_id check, busy timeout and
retry path; on PostgreSQL the row locks serialize the same operations.
"""

import os
import sqlite3
import tempfile
import threading
import time
from contextlib import contextmanager

import pytest

from itad import create_app
from itad.errors import EvidenceAlreadyExists, InvalidTransition, LockTimeout
from itad.extensions import db
from itad.models import Booking, Job, JobEvidence
from itad.services import driver_service, lifecycle_service

from conftest import EVIDENCE, drive_to, make_booking


@contextmanager
def _file_backed_app(**config):
    """App on a fresh temp-file SQLite database; yields (app, db_path)."""
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "concurrency.db")
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "LOCK_RETRY_ATTEMPTS": 10,
        "LOCK_RETRY_BACKOFF_SECONDS": 0.01,
        **config,
    })
    with app.app_context():
        db.create_all()

    try:
        yield app, db_path
    finally:
        with app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        tmpdir.cleanup()


@pytest.fixture
def file_app():
    with _file_backed_app() as (app, _):
        yield app


def _race(app, *targets):
    """Run each callable in its own thread and app context; return results in order."""
    results = [None] * len(targets)
    barrier = threading.Barrier(len(targets))

    def worker(index, target):
        with app.app_context():
            try:
                barrier.wait()
                results[index] = target()
            except Exception as exc:
                results[index] = exc
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i, t)) for i, t in enumerate(targets)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def _errors(results):
    return [r for r in results if isinstance(r, Exception)]


def _scheduled_job(app):
    with app.app_context():
        driver = driver_service.create_driver("Sam Carter", "AB12 CDE", "van", "diesel")
        booking = make_booking()
        booking = lifecycle_service.assign_driver(booking.id, driver.id)
        ids = booking.id, booking.job_id, driver.id
        db.session.remove()
    return ids


def test_conflicting_transitions_from_same_status(file_app):
    _, job_id, _ = _scheduled_job(file_app)
    with file_app.app_context():
        drive_to(job_id, "arrived")
        lifecycle_service.submit_job_evidence(job_id, "collected", EVIDENCE)
        db.session.remove()

    results = _race(
        file_app,
        lambda: lifecycle_service.transition_job_status(job_id, "collected", expected_status="arrived").id,
        lambda: lifecycle_service.transition_job_status(job_id, "cancelled", expected_status="arrived").id,
    )

    errors = _errors(results)
    assert len(errors) == 1
    assert isinstance(errors[0], InvalidTransition)

    with file_app.app_context():
        status = db.session.get(Job, job_id).status
    winner = "collected" if results[0] == job_id else "cancelled"
    assert status == winner


def test_same_transition_twice_applies_once(file_app):
    _, job_id, _ = _scheduled_job(file_app)
    with file_app.app_context():
        drive_to(job_id, "arrived")
        lifecycle_service.submit_job_evidence(job_id, "collected", EVIDENCE)
        db.session.remove()

    move = lambda: lifecycle_service.transition_job_status(job_id, "collected").status
    results = _race(file_app, move, move)

    assert results.count("collected") == 1
    assert isinstance(_errors(results)[0], InvalidTransition)


def test_concurrent_driver_assignment_creates_one_job(file_app):
    with file_app.app_context():
        driver = driver_service.create_driver("Sam Carter", "AB12 CDE", "van", "diesel")
        booking = make_booking()
        booking_id, driver_id = booking.id, driver.id
        db.session.remove()

    assign = lambda: lifecycle_service.assign_driver(booking_id, driver_id).job_id
    results = _race(file_app, assign, assign)

    errors = _errors(results)
    assert len(errors) == 1
    assert isinstance(errors[0], InvalidTransition)
    with file_app.app_context():
        assert db.session.query(Job).filter_by(booking_id=booking_id).count() == 1


def test_concurrent_duplicate_evidence(file_app):
    _, job_id, _ = _scheduled_job(file_app)

    submit = lambda: lifecycle_service.submit_job_evidence(job_id, "en-route", EVIDENCE).id
    results = _race(file_app, submit, submit)

    errors = _errors(results)
    assert len(errors) == 1
    assert isinstance(errors[0], EvidenceAlreadyExists)
    with file_app.app_context():
        assert db.session.query(JobEvidence).filter_by(job_id=job_id).count() == 1


def test_concurrent_bookings_get_unique_numbers(file_app):
    with file_app.app_context():
        # Seed the yearly sequence row
        make_booking()
        db.session.remove()

    create = lambda: make_booking().booking_number
    results = _race(file_app, *([create] * 6))

    assert _errors(results) == []
    assert len(set(results)) == 6


def test_held_write_lock_surfaces_as_lock_timeout():
    with _file_backed_app(LOCK_TIMEOUT_SECONDS=0.2, LOCK_RETRY_ATTEMPTS=2) as (app, db_path):
        with app.app_context():
            driver = driver_service.create_driver("Sam Carter", "AB12 CDE", "van", "diesel")
            booking = make_booking()
            booking_id, driver_id = booking.id, driver.id

            # Another process holding the write lock for the whole call
            blocker = sqlite3.connect(db_path, isolation_level=None)
            blocker.execute("BEGIN IMMEDIATE")
            try:
                started = time.monotonic()
                with pytest.raises(LockTimeout) as exc:
                    lifecycle_service.assign_driver(booking_id, driver_id)
                elapsed = time.monotonic() - started
            finally:
                blocker.execute("ROLLBACK")
                blocker.close()

            assert exc.value.code == "timeout"
            assert exc.value.http_status == 503
            # Two bounded waits, not an unbounded hang
            assert elapsed < 5

            db.session.remove()
            booking = db.session.get(Booking, booking_id)
            assert booking.status == "created"
            assert booking.job_id is None
            assert db.session.query(Job).count() == 0
            db.session.remove()
