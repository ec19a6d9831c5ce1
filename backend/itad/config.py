# backend/itad/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/itad.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///itad.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound on how long a booking/job row lock may be waited for.
    # SQLite: busy timeout. PostgreSQL: lock_timeout.
    LOCK_TIMEOUT_SECONDS = float(os.environ.get("LOCK_TIMEOUT_SECONDS", "5"))
    LOCK_RETRY_ATTEMPTS = int(os.environ.get("LOCK_RETRY_ATTEMPTS", "3"))
    LOCK_RETRY_BACKOFF_SECONDS = float(os.environ.get("LOCK_RETRY_BACKOFF_SECONDS", "0.05"))

    # Sanitisation certificates are rendered by the documents service;
    # we only hand out the URL they will be published at.
    CERTIFICATE_BASE_URL = os.environ.get(
        "CERTIFICATE_BASE_URL",
        "https://certificates.example.invalid/sanitisation",
    )

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def engine_options_for(database_uri: str, lock_timeout_seconds: float) -> dict:
    """
    Build SQLAlchemy engine options that bound lock waits for the given backend.
    """
    if database_uri.startswith("sqlite"):
        return {"connect_args": {"timeout": lock_timeout_seconds}}
    if database_uri.startswith("postgresql"):
        timeout_ms = int(lock_timeout_seconds * 1000)
        return {"connect_args": {"options": f"-c lock_timeout={timeout_ms}"}}
    return {}
