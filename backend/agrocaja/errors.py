# Overview: Domain error taxonomy and its mapping to JSON HTTP responses.

from __future__ import annotations

from flask import current_app, jsonify


class AgroCajaError(Exception):
    """Base class for expected, client-visible failures."""

    status_code = 400
    code = "error"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AgroCajaError):
    """400-level input problem."""

    status_code = 400
    code = "validation_error"


class NoActiveFarmError(AgroCajaError):
    """Caller has not selected the farm that scopes every ledger operation."""

    status_code = 400
    code = "no_active_farm"

    def __init__(self, message: str = "No active farm selected", **details):
        super().__init__(message, **details)


class InsufficientFundsError(AgroCajaError):
    """Withdrawal would drive the cash balance below zero."""

    status_code = 400
    code = "insufficient_funds"


class NotFoundError(AgroCajaError):
    """Entity missing or not owned by the caller (the two are not distinguished)."""

    status_code = 404
    code = "not_found"


class ConflictError(AgroCajaError):
    """409-level business rule conflict (e.g., entry already settled)."""

    status_code = 409
    code = "conflict"


def error_response(exc: AgroCajaError):
    body = {
        "success": False,
        "error": exc.code,
        "message": exc.message,
    }
    if exc.details:
        body["details"] = exc.details
    return jsonify(body), exc.status_code


def internal_error_response(message: str, exc: Exception | None = None):
    """500 body; exception text is only exposed when the app runs in debug mode."""
    body = {"success": False, "error": "internal", "message": message}
    if exc is not None and current_app.debug:
        body["detail"] = str(exc)
    return jsonify(body), 500
