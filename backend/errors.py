"""Application error taxonomy.

Every component raises one of these; the API layer maps them to HTTP
responses in a single exception handler.
"""

from typing import Literal

AuthErrorKind = Literal["missing", "invalid", "expired"]


class ScantrackError(Exception):
    """Base exception for all scantrack errors."""

    status_code = 500
    code = "server_error"

    def __init__(self, detail: str | None = None, *, code: str | None = None):
        self.detail = detail or "Server error."
        if code:
            self.code = code
        super().__init__(self.detail)


class ValidationError(ScantrackError):
    """Raised when request input is missing or malformed."""

    status_code = 400
    code = "invalid_request"


class AuthError(ScantrackError):
    """Raised when a bearer token is missing, malformed or expired."""

    status_code = 401
    code = "unauthenticated"

    def __init__(self, kind: AuthErrorKind, detail: str | None = None, *, code: str | None = None):
        self.kind = kind
        super().__init__(detail or _AUTH_DETAILS[kind], code=code)


_AUTH_DETAILS: dict[str, str] = {
    "missing": "Missing bearer token.",
    "invalid": "Invalid session token.",
    "expired": "Session token expired.",
}


class AuthzError(ScantrackError):
    """Raised when an authenticated caller lacks the required role."""

    status_code = 403
    code = "forbidden"


class ConflictError(ScantrackError):
    """Raised when a uniqueness constraint is violated."""

    status_code = 409
    code = "conflict"


class NotFoundError(ScantrackError):
    """Raised when the target row does not exist."""

    status_code = 404
    code = "not_found"


class StorageError(ScantrackError):
    """Raised for any other failure of the underlying store."""

    status_code = 500
    code = "server_error"
