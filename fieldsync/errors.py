"""Exception types raised across the capture engine."""
from __future__ import annotations


class FieldSyncError(Exception):
    """Base exception for the application."""


class ValidationError(FieldSyncError):
    """Raised when capture input is rejected before any acquisition."""


class SessionBusyError(FieldSyncError):
    """Raised when a capture is submitted while another is in flight."""


class OverrideNotAllowedError(FieldSyncError):
    """Raised when saving without GPS is requested outside the error state."""


class UnresolvedLocationError(FieldSyncError):
    """No fix was acquired and no earlier anchor carries a coordinate."""


class PersistenceFailure(FieldSyncError):
    """Raised when the anchor store cannot complete a read or write."""


class PositionError(FieldSyncError):
    """A single geolocation attempt failed."""

    PERMISSION_DENIED = "permission-denied"
    POSITION_UNAVAILABLE = "position-unavailable"
    TIMEOUT = "timeout"

    CODES = (PERMISSION_DENIED, POSITION_UNAVAILABLE, TIMEOUT)

    def __init__(self, code: str, message: str = ""):
        if code not in self.CODES:
            raise ValueError(f"Unknown position error code: {code}")
        super().__init__(message or code)
        self.code = code
