"""
Exception hierarchy for BuildLedger.

Three families matter to callers:
- ValidationError: caller input violates a precondition (checked locally)
- AuthorizationError: the acting session lacks a required privilege
- PersistenceError: the backing store failed or rejected a read/write

None of them are retried internally. The caller decides whether to
resubmit.
"""

from typing import Optional


class BuildLedgerError(Exception):
    """Base exception for all BuildLedger errors."""
    pass


class ValidationError(BuildLedgerError):
    """Caller input violates a precondition."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AuthorizationError(BuildLedgerError):
    """Actor lacks the privilege required for the operation."""
    pass


class AuthenticationError(AuthorizationError):
    """Credentials rejected, or the account is deactivated."""
    pass


class PersistenceError(BuildLedgerError):
    """
    The backing store read/write failed or returned an error payload.

    `inconsistent` is set when a multi-write operation could not be
    rolled back and the store may now disagree with the ledger.
    """

    def __init__(self, message: str, inconsistent: bool = False):
        super().__init__(message)
        self.inconsistent = inconsistent


class NotFoundError(PersistenceError):
    """Entity not found in storage."""
    pass


class StaleBudgetError(PersistenceError):
    """
    Guarded budget update rejected: the stored budget no longer matches
    the value the caller based its change on.
    """

    def __init__(self, message: str, expected=None, actual=None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class StoreConnectionError(PersistenceError):
    """Could not connect to the storage backend."""
    pass


class AIServiceError(BuildLedgerError):
    """The generative-text service failed to produce a response."""
    pass
