"""
Domain errors raised by the service layer.

Each error carries the HTTP status it maps to; ``register_error_handlers``
renders them in the unified ``{error, request_id, code}`` shape.
"""
from __future__ import annotations


class ClinicFlowError(Exception):
    status_code = 400
    default_message = "Request error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailedError(ClinicFlowError):
    status_code = 400
    default_message = "Invalid data"


class AuthenticationError(ClinicFlowError):
    status_code = 401
    default_message = "Not authenticated"


class LimitExceededError(ClinicFlowError):
    status_code = 402
    default_message = "Subscription limit reached. Please upgrade your plan."


class PermissionDeniedError(ClinicFlowError):
    status_code = 403
    default_message = "Access denied"


class NotFoundError(ClinicFlowError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ClinicFlowError):
    status_code = 409
    default_message = "Conflict"


class InvalidTransitionError(ConflictError):
    default_message = "Invalid status transition"
