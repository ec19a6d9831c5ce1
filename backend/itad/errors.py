# Overview: Domain error taxonomy shared by services and routes.

"""
Lifecycle errors.

Every error the orchestrator can return to a caller is a LifecycleError.
Routes translate them to JSON using `code` and `http_status`; services never
catch them to retry. Only LockTimeout is safe to retry as-is, everything else
needs the caller to re-fetch state or fix its input first.
"""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for all typed lifecycle failures."""

    code = "lifecycle_error"
    http_status = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class NotFound(LifecycleError):
    """Booking, job, driver, record or asset line does not exist."""

    code = "not_found"
    http_status = 404


class InvalidTransition(LifecycleError):
    """409-level: target status is not reachable from the current one."""

    code = "invalid_transition"
    http_status = 409

    def __init__(self, message: str, *, current_status: str | None = None, target_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status
        self.target_status = target_status

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["current_status"] = self.current_status
        payload["target_status"] = self.target_status
        return payload


class EvidenceRequired(LifecycleError):
    """Driver transition blocked until photo + signature evidence exists."""

    code = "evidence_required"
    http_status = 409


class EvidenceAlreadyExists(LifecycleError):
    """Evidence for this (job, status) was already captured and is read-only."""

    code = "evidence_already_exists"
    http_status = 409


class GateNotSatisfied(LifecycleError):
    """Approval blocked: grading, sanitisation or verification incomplete."""

    code = "gate_not_satisfied"
    http_status = 409

    def __init__(self, message: str, *, completion: dict | None = None):
        super().__init__(message)
        self.completion = completion or {}

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["completion"] = self.completion
        return payload


class ValidationError(LifecycleError):
    """400-level input problem."""

    code = "validation_error"
    http_status = 400


class LockTimeout(LifecycleError):
    """Row lock could not be obtained in time. Safe to retry."""

    code = "timeout"
    http_status = 503
