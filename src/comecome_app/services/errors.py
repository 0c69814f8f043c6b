"""
Typed failures raised by the auth core.

Each carries a machine-readable kind, a user-facing message and the HTTP
status the API layer should answer with. The core never builds responses.
"""

from typing import Any, Dict, Optional


class AuthError(Exception):
    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str = "Internal error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.status_code,
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class InvalidInputError(AuthError):
    kind = "validation_error"
    status_code = 400


class RateLimitedError(AuthError):
    kind = "rate_limited"
    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded. Try again later."):
        super().__init__(message)


class InvalidCredentialsError(AuthError):
    """Wrong PIN and unknown user share this error and message."""

    kind = "invalid_credentials"
    status_code = 401

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class InvalidCurrentPinError(AuthError):
    kind = "invalid_current_pin"
    status_code = 401

    def __init__(self, message: str = "Invalid current PIN"):
        super().__init__(message)


class InvalidUnlockCodeError(AuthError):
    kind = "invalid_unlock_code"
    status_code = 401

    def __init__(self, message: str = "Invalid unlock code"):
        super().__init__(message)


class AccountLockedError(AuthError):
    kind = "locked"
    status_code = 403

    def __init__(self, minutes_remaining: int, message: Optional[str] = None):
        super().__init__(
            message or f"Account locked. Try again in {minutes_remaining} minutes.",
            details={"minutes_remaining": minutes_remaining},
        )
        self.minutes_remaining = minutes_remaining


class PermissionDeniedError(AuthError):
    kind = "forbidden"
    status_code = 403


class NotFoundError(AuthError):
    kind = "not_found"
    status_code = 404


class NotAuthenticatedError(AuthError):
    kind = "not_authenticated"
    status_code = 401

    def __init__(self, message: str = "Invalid or expired session"):
        super().__init__(message)
