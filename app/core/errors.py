"""
Domain error taxonomy.

Every service raises one of these; the HTTP layer maps them to status codes in
``main.py``. ``CrossAccountAccessError`` deliberately carries the same public
message as a plain not-found so a caller cannot learn that an id exists in
another account.
"""

from typing import Any, Optional


class GuestbookError(Exception):
    """Base class for errors surfaced to callers"""

    status_code = 400
    error_code = "guestbook_error"

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(GuestbookError):
    status_code = 404
    error_code = "not_found"

    def __init__(self, resource: str = "Resource", details: Any = None):
        super().__init__(f"{resource} not found", details)
        self.resource = resource


class CrossAccountAccessError(NotFoundError):
    """An id resolved, but to a record owned by another account."""

    def __init__(self, resource: str, record_id: str, owner_account_id: str, caller_account_id: str):
        super().__init__(resource)
        self.record_id = record_id
        self.owner_account_id = owner_account_id
        self.caller_account_id = caller_account_id


class ValidationError(GuestbookError):
    status_code = 422
    error_code = "validation_error"


class CheckInConfirmationRequired(GuestbookError):
    """Guest is already checked in; the caller must confirm an overwrite."""

    status_code = 409
    error_code = "checkin_confirmation_required"

    def __init__(self, guest: Any):
        super().__init__("Guest is already checked in. Confirm to overwrite the check-in.")
        self.guest = guest


class ConcurrentModificationError(GuestbookError):
    status_code = 409
    error_code = "concurrent_modification"

    def __init__(self, resource: str = "Record"):
        super().__init__(f"{resource} was modified concurrently, please retry")


class PrizeCompletedError(GuestbookError):
    status_code = 409
    error_code = "prize_completed"

    def __init__(self, prize_id: str):
        super().__init__("Prize already has a winner")
        self.prize_id = prize_id


class EmptyPoolError(GuestbookError):
    status_code = 409
    error_code = "empty_pool"

    def __init__(self, message: str = "No checked-in guests are eligible for the draw"):
        super().__init__(message)


class AuthorizationError(GuestbookError):
    status_code = 401
    error_code = "unauthorized"

    def __init__(self, message: str = "Invalid or missing credentials"):
        super().__init__(message)


class OperationTimeoutError(GuestbookError):
    status_code = 504
    error_code = "timeout"

    def __init__(self, operation: Optional[str] = None):
        label = f" during {operation}" if operation else ""
        super().__init__(f"Request deadline exceeded{label}; the operation failed")
        self.operation = operation
