"""Exceptions raised while reconciling gateway notifications."""


class ReconciliationError(Exception):
    """Base class for reconciliation failures."""

    pass


class VerificationError(ReconciliationError):
    """Raised when an inbound notification fails origin or signature verification."""

    pass


class StoreUnavailable(ReconciliationError):
    """Raised when the order store cannot be read or written."""

    pass
