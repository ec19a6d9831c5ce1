# Overview: Request decorators for API routes.

from functools import wraps

from flask import current_app, jsonify, request

from .errors import LifecycleError, ValidationError
from .extensions import db


def handle_lifecycle_errors(f):
    """
    Translate service errors into JSON responses.

    - LifecycleError -> {"error", "code", ...} with the error's HTTP status
    - anything else  -> rolled back, logged with traceback, 500

    Services already roll back their own transaction; the rollback here
    covers failures outside run_atomic (serialisation, bad reads).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except LifecycleError as exc:
            return jsonify(exc.to_dict()), exc.http_status
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Unhandled error in %s %s", request.method, request.path)
            return jsonify({"error": "Internal server error", "code": "internal_error"}), 500

    return decorated_function


def json_body() -> dict:
    """Request JSON as a dict; a missing or non-object body is a ValidationError."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def actor_from_request(data: dict | None = None) -> str | None:
    """
    Who is acting. Identity is owned by the auth gateway in front of this
    service, which forwards it as X-Actor; a body "actor" field is the fallback.
    """
    actor = request.headers.get("X-Actor")
    if not actor and data:
        actor = data.get("actor")
    if actor is not None and not isinstance(actor, str):
        raise ValidationError("actor must be a string")
    return actor[:64] if actor else None
