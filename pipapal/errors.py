"""Service-layer exceptions, mapped to HTTP responses by the API."""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors raised by service functions."""

    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class NotFoundError(ServiceError):
    status_code = 404


class PermissionDeniedError(ServiceError):
    status_code = 403


class ConflictError(ServiceError):
    status_code = 400


class InvalidTransitionError(ServiceError):
    status_code = 409

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot change status from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class ExternalServiceError(ServiceError):
    """A vendor API (Twilio, Firebase, M-Pesa) failed or is not configured."""

    status_code = 502
