"""
Pytest fixtures for the ITAD lifecycle backend tests.

Provides test database setup, driver/booking fixtures at each lifecycle
stage, and the Flask test client.
"""

import pytest

from itad import create_app
from itad.extensions import db
from itad.services import driver_service, lifecycle_service


EVIDENCE = {
    "photos": ["photos/site-1.jpg"],
    "signature": "signatures/driver-1.png",
    "seal_numbers": ["SEAL-001"],
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'LOCK_RETRY_BACKOFF_SECONDS': 0.001,
        'CERTIFICATE_BASE_URL': 'https://certs.test/sanitisation',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_booking(**overrides):
    """Create a booking with two asset lines (10 laptops, 2 servers) unless overridden."""
    kwargs = {
        "site_info": {
            "site_name": "Acme HQ",
            "address": "1 Test Street, London",
            "postcode": "ec1a 1bb",
            "round_trip_distance_km": 80,
            "contact_name": "Jo Bloggs",
        },
        "asset_lines": [
            {"category_id": "laptop", "quantity": 10},
            {"category_id": "server", "quantity": 2},
        ],
        "scheduled_date": "2026-11-03",
        "charity_percent": 10,
        "client_name": "Acme Ltd",
    }
    kwargs.update(overrides)
    return lifecycle_service.create_booking(
        kwargs.pop("site_info"),
        kwargs.pop("asset_lines"),
        kwargs.pop("scheduled_date"),
        kwargs.pop("charity_percent"),
        **kwargs,
    )


def drive_to(job_id, target):
    """Walk a job forward from 'routed' to `target`, capturing evidence where needed."""
    path = ["en-route", "arrived", "collected", "warehouse", "sanitised", "graded"]
    for status in path:
        evidence = EVIDENCE if status in ("en-route", "arrived", "collected", "warehouse") else None
        job = lifecycle_service.advance_job(job_id, status, evidence)
        if status == target:
            return job
    raise AssertionError(f"unknown target {target}")


@pytest.fixture(scope='function')
def driver(db_session):
    """Active diesel van driver."""
    return driver_service.create_driver("Sam Carter", "ab12 cde", "van", "diesel", "07700 900123")


@pytest.fixture(scope='function')
def booking(db_session):
    """Booking in 'created' status."""
    return make_booking()


@pytest.fixture(scope='function')
def scheduled_booking(booking, driver):
    """Booking with a driver assigned; its job is 'routed'."""
    return lifecycle_service.assign_driver(booking.id, driver.id, scheduled_by="ops@test")


@pytest.fixture(scope='function')
def collected_booking(scheduled_booking):
    """Booking whose job has been collected and brought to the warehouse."""
    drive_to(scheduled_booking.job_id, "warehouse")
    return lifecycle_service.get_booking(scheduled_booking.id)


def sanitise_all(booking_id, asset_ids=("laptop", "server"), verify=True):
    """One sanitisation record per listed asset line, verified unless told otherwise."""
    records = []
    for asset_id in asset_ids:
        record = lifecycle_service.record_sanitisation(booking_id, asset_id, "blancco", performed_by="tech@test")
        if verify:
            record = lifecycle_service.verify_sanitisation(record.id, verified_by="qa@test")
        records.append(record)
    return records


def grade_all(booking_id, asset_ids=("laptop", "server"), grade="B"):
    return [
        lifecycle_service.record_grade(booking_id, asset_id, grade, graded_by="grader@test")
        for asset_id in asset_ids
    ]


@pytest.fixture(scope='function')
def graded_booking(collected_booking):
    """Booking and job both 'graded' with every line sanitised, verified and graded."""
    sanitise_all(collected_booking.id)
    lifecycle_service.advance_job(collected_booking.job_id, "sanitised")
    grade_all(collected_booking.id)
    lifecycle_service.advance_job(collected_booking.job_id, "graded")
    return lifecycle_service.get_booking(collected_booking.id)
