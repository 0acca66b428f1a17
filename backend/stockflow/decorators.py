# Overview: Request decorators and error mapping for API routes.

from functools import wraps
from flask import request, jsonify, g

from .validation import ConcurrencyError, ConflictError, NotFoundError, ValidationError


# Typed service failures a route maps to a 4xx response
SERVICE_ERRORS = (ValidationError, NotFoundError, ConflictError, ConcurrencyError)


def require_actor(f):
    """
    Require the acting user id.

    Sets g.actor_id from the X-User-Id header. Authentication itself happens
    upstream; this service only records who did what.

    Returns 401 if the header is missing or not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get("X-User-Id") or "").strip()
        if not raw:
            return jsonify({"error": "X-User-Id header required"}), 401
        if not raw.isdigit() or int(raw) < 1:
            return jsonify({"error": "Invalid X-User-Id header"}), 401

        g.actor_id = int(raw)
        return f(*args, **kwargs)

    return decorated_function


def error_response(exc: Exception):
    """Map a typed service error to a JSON response tuple."""
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ConcurrencyError):
        return jsonify({"error": str(exc), "retryable": True}), 409
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409
    return jsonify({"error": str(exc)}), 400
