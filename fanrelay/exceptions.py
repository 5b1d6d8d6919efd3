"""Custom exception hierarchy for fanrelay.

Raised at the HTTP boundary only; the centralized error handler translates
them into consistent JSON responses. The delivery core never raises these.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for all fanrelay errors."""

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str = "An internal error occurred") -> None:
        self.message = message
        super().__init__(message)


class InvalidPayloadError(RelayError):
    """Inbound webhook body is not a JSON object."""

    status_code = 400
    error_type = "invalid_json"

    def __init__(self, message: str = "Invalid JSON") -> None:
        super().__init__(message)


class UnauthorizedError(RelayError):
    """Webhook shared-secret check rejected the request."""

    status_code = 401
    error_type = "unauthorized"

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)
