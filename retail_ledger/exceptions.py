"""Typed error hierarchy for the ledger core.

Every core operation fails with one of these kinds; the boundary layer
translates them into transport-specific responses.
"""


class LedgerError(Exception):
    """Base exception for all ledger errors."""


class InvalidArgumentError(LedgerError):
    """Raised for malformed or out-of-range input, insufficient funds or units."""


class NotFoundError(LedgerError):
    """Raised when an account, instrument, position or reference does not exist."""


class UnauthorizedError(LedgerError):
    """Raised when the caller does not own the resource."""


class ForbiddenError(LedgerError):
    """Raised when the resource state refuses the operation (e.g. frozen account)."""


class InvalidStateError(ForbiddenError):
    """Raised when an entity is in an invalid state for the operation."""


class DuplicateKeyError(LedgerError):
    """Raised by storage when an insert hits an existing key."""


class ReferenceCollisionError(LedgerError):
    """Raised when no unique reference could be issued within the attempt budget."""


class ConfigurationError(LedgerError):
    """Raised when configuration is invalid or missing."""
