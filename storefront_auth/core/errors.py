"""Error taxonomy for the authentication core.

Each failure the gateway can report is its own exception type carrying the
HTTP status, a machine-readable code and a message that is safe to show to
the client. Extra fields end up next to ``error`` and ``code`` in the body.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


class AuthError(Exception):
    """Base class for every client-facing authentication failure."""

    status_code: int = 400
    code: str = "BAD_REQUEST"
    message: str = "Bad request"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message
        self.extra = {k: v for k, v in extra.items() if v is not None}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, **self.extra}


# ─── 400 ─────────────────────────────────────

class BadRequest(AuthError):
    code = "MISSING_CREDENTIALS"
    message = "Email and password are required"


class RequestValidationFailed(AuthError):
    code = "VALIDATION_ERROR"
    message = "Validation failed"

    def __init__(self, errors: List[Dict[str, str]], message: Optional[str] = None):
        super().__init__(message, errors=errors)
        self.errors = errors


class WeakPassword(AuthError):
    code = "WEAK_PASSWORD"
    message = "Password does not meet security requirements"

    def __init__(self, violations: List[str]):
        super().__init__(details=list(violations))
        self.violations = list(violations)


class InvalidUpload(AuthError):
    code = "INVALID_UPLOAD"
    message = "Invalid file"


class EmailAlreadyRegistered(AuthError):
    code = "EMAIL_TAKEN"
    message = "Email already registered"


class CurrentPasswordIncorrect(AuthError):
    code = "INVALID_CURRENT_PASSWORD"
    message = "Current password is incorrect"


# ─── 401 ─────────────────────────────────────

class InvalidCredentials(AuthError):
    status_code = 401
    code = "INVALID_CREDENTIALS"
    message = "Invalid credentials"

    def __init__(self, attempts_remaining: Optional[int] = None):
        super().__init__(attemptsRemaining=attempts_remaining)
        self.attempts_remaining = attempts_remaining


class TokenRequired(AuthError):
    status_code = 401
    code = "TOKEN_REQUIRED"
    message = "Access token required"


class TokenExpired(AuthError):
    status_code = 401
    code = "TOKEN_EXPIRED"
    message = "Access token expired"


class TokenInvalid(AuthError):
    status_code = 401
    code = "TOKEN_INVALID"
    message = "Invalid access token"


class TokenRevoked(AuthError):
    """The token's version no longer matches the user's; clear the session."""

    status_code = 401
    code = "TOKEN_REVOKED"
    message = "Session revoked, please sign in again"


class NoRefreshToken(AuthError):
    status_code = 401
    code = "NO_REFRESH_TOKEN"
    message = "Refresh token not found"


class InvalidRefreshToken(AuthError):
    status_code = 401
    code = "INVALID_REFRESH_TOKEN"
    message = "Invalid refresh token"


class RefreshTokenExpired(AuthError):
    status_code = 401
    code = "REFRESH_TOKEN_EXPIRED"
    message = "Refresh token expired"


class UserNotFound(AuthError):
    status_code = 401
    code = "USER_NOT_FOUND"
    message = "Associated user no longer exists"


# ─── 403 / 423 ───────────────────────────────

class PendingApproval(AuthError):
    status_code = 403
    code = "PENDING_APPROVAL"
    message = "Account pending approval"


class AdminRequired(AuthError):
    status_code = 403
    code = "ADMIN_REQUIRED"
    message = "Administrators only"


class AccountLocked(AuthError):
    status_code = 423
    code = "ACCOUNT_LOCKED"

    def __init__(self, minutes_remaining: int, locked_until: Optional[datetime] = None):
        unit = "minute" if minutes_remaining == 1 else "minutes"
        super().__init__(
            f"Account temporarily locked. Try again in {minutes_remaining} {unit}",
            minutesRemaining=minutes_remaining,
            lockedUntil=locked_until.isoformat() if locked_until else None,
        )
        self.minutes_remaining = minutes_remaining
        self.locked_until = locked_until


# ─── 404 / 500 ───────────────────────────────

class NotFound(AuthError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found"


class PhotoUploadFailed(AuthError):
    status_code = 500
    code = "UPLOAD_FAILED"
    message = "Error uploading profile photo"
