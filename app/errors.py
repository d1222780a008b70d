"""
Cozy Connect — Domain error taxonomy.

Every failure a service can raise derives from ``CozyConnectError`` and
carries the HTTP status and machine-readable ``error_type`` the API layer
renders.  Services raise these and never translate them into responses
themselves; ``app.main`` installs a single exception handler.
"""

from __future__ import annotations


class CozyConnectError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    error_type: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, error_type: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if error_type is not None:
            self.error_type = error_type


class Unauthenticated(CozyConnectError):
    status_code = 401
    error_type = "NOT_AUTHENTICATED"


class ProfileNotFound(CozyConnectError):
    status_code = 404
    error_type = "NO_PROFILE"


class MatchNotFound(CozyConnectError):
    status_code = 404
    error_type = "NO_MATCH"


class Unauthorized(CozyConnectError):
    """Requester is not a party to the match.

    Rendered exactly like ``MatchNotFound`` so callers cannot probe for the
    existence of other people's matches.
    """

    status_code = 404
    error_type = "NO_MATCH"


class InvalidRequest(CozyConnectError):
    status_code = 400
    error_type = "INVALID_REQUEST"


class InvalidStatus(CozyConnectError):
    status_code = 400
    error_type = "INVALID_STATUS"


class InvalidSwipe(CozyConnectError):
    status_code = 400
    error_type = "INVALID_SWIPE"


class MatchStateConflict(CozyConnectError):
    status_code = 409
    error_type = "MATCH_STATE_CONFLICT"


class ProfileAlreadyExists(CozyConnectError):
    status_code = 409
    error_type = "PROFILE_EXISTS"


class VerificationError(CozyConnectError):
    """Verification-code exchange failed (NO_CODE / INVALID_CODE / ALREADY_LINKED)."""

    status_code = 400
    error_type = "VERIFICATION_FAILED"


class UploadRejected(CozyConnectError):
    status_code = 400
    error_type = "UPLOAD_REJECTED"


class StoreUnavailable(CozyConnectError):
    """The record store is unconfigured or a store call failed."""

    status_code = 500
    error_type = "STORE_UNAVAILABLE"


class DuplicateRecord(StoreUnavailable):
    """A create collided with an existing record's unique key."""

    status_code = 409
    error_type = "DUPLICATE_RECORD"


class EmailDeliveryError(CozyConnectError):
    status_code = 500
    error_type = "EMAIL_ERROR"


class StorageUnavailable(CozyConnectError):
    status_code = 500
    error_type = "STORAGE_UNAVAILABLE"
