# backend/errors.py
"""
Auth error taxonomy.

Every error carries the HTTP status it maps to; the app-level handler turns
them into ``{"error": message, "code": ClassName}`` bodies.
"""
from __future__ import annotations

__all__ = [
    "AuthError",
    "MissingInput",
    "InvalidInput",
    "InvalidCredentials",
    "RateLimited",
    "SessionNotFound",
    "AlreadyUsed",
    "Expired",
    "InvalidCode",
    "UserNotFound",
    "NoEmailOnFile",
    "NoContactOnFile",
    "UserExists",
    "DeliveryFailed",
]


class AuthError(Exception):
    status_code = 400
    message = "Authentication error"

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class MissingInput(AuthError):
    message = "Missing required fields"


class InvalidInput(AuthError):
    message = "Invalid input"


class InvalidCredentials(AuthError):
    # same text whether the identifier or the password was wrong
    message = "Invalid credentials"


class RateLimited(AuthError):
    status_code = 429
    message = "Too many OTP requests"

    def __init__(self, retry_after: int, window_minutes: int):
        self.retry_after = max(int(retry_after), 0)
        super().__init__(
            f"Too many OTP attempts. Try again in {self.retry_after} seconds "
            f"(limit window {window_minutes} minutes)."
        )

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retryAfter"] = self.retry_after
        return body


class SessionNotFound(AuthError):
    message = "Invalid or expired OTP session"


class AlreadyUsed(AuthError):
    message = "OTP already used"


class Expired(AuthError):
    message = "OTP expired"


class InvalidCode(AuthError):
    message = "Invalid OTP code"


class UserNotFound(AuthError):
    message = "User not found"


class NoEmailOnFile(AuthError):
    message = "User email not available for OTP"


class NoContactOnFile(AuthError):
    message = "No phone or email on file to send an OTP to"


class UserExists(AuthError):
    status_code = 409
    message = "User exists"


class DeliveryFailed(AuthError):
    status_code = 500
    message = "Failed to send OTP email"
