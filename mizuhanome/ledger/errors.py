"""Exceptions raised by the staking ledger."""


class LedgerError(Exception):
    """Base class for ledger failures."""

    pass


class StorageError(LedgerError):
    """Raised when a ledger cannot be read from or written to storage."""

    pass


class LedgerIntegrityError(LedgerError):
    """Raised when a persisted ledger does not match the expected schema."""

    pass
