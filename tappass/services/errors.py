"""Access control error taxonomy.

Lookup and audit failures are routed by the session controller into
terminal ScanResult values; the exceptions below are what the
collaborators and the controller raise at their seams.
"""

from __future__ import annotations


class AccessControlError(Exception):
    """Base class for every error raised by the access control core."""


class InvalidIdentifierError(AccessControlError, ValueError):
    """The candidate digital ID was blank."""


class BusyError(AccessControlError):
    """A scan cycle is already in flight on this reader."""


class InvalidStateError(AccessControlError):
    """The requested operation is not valid in the controller's current state."""


class OverrideNotAllowedError(AccessControlError):
    """The operator tried to force an outcome the policy forbids forcing."""


class PersistenceError(AccessControlError):
    """The audit sink could not durably record an access attempt."""

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class AuditTimeoutError(PersistenceError):
    """The last audit write try exceeded its deadline."""


class ReaderHeldError(AccessControlError):
    """The reader is open under a different operator."""
