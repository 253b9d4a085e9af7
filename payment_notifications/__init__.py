"""Payment notification reconciliation service."""

__version__ = "1.0.0"
