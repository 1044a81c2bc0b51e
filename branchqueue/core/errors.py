"""Typed failures raised by the booking and queue services.

Every error carries a stable ``code`` for clients, a human readable
``message`` and optional structured ``details``. The API layer maps each
class to an HTTP status through ``status_code``.
"""
from typing import Any


class EngineError(Exception):
    code = "engine_error"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationError(EngineError):
    """Missing or malformed intake data; the user corrects the input."""
    code = "validation_error"
    status_code = 422


class SlotTaken(EngineError):
    """Lost a reservation race; the caller re-lists slots and retries."""
    code = "slot_taken"
    status_code = 409


class InvalidTransition(EngineError):
    code = "invalid_transition"
    status_code = 409


class PolicyViolation(EngineError):
    """Branch rule (cancellation/reschedule window, limits) forbids the action."""
    code = "policy_violation"
    status_code = 403


class NotFound(EngineError):
    code = "not_found"
    status_code = 404
