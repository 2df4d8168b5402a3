"""
Error taxonomy for the progress engine.

Validation errors are raised before any state is read or written.
Persistence errors split into transient (queue and retry later) and
permanent (report as failed). None of these escape the service façade;
they are turned into failed results there.
"""

from __future__ import annotations


class LearnSyncError(Exception):
    """Base class for engine errors."""


class OutcomeValidationError(LearnSyncError, ValueError):
    """Malformed outcome or score input."""


class PersistenceError(LearnSyncError):
    """A store operation did not complete."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientPersistenceError(PersistenceError):
    """Network or auth unavailable; the write may succeed later."""


class PermanentPersistenceError(PersistenceError):
    """The remote store rejected the request outright."""


class IdentityTimeoutError(LearnSyncError):
    """Identity resolution did not finish within its bound."""
