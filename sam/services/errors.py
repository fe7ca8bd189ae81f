"""
Error types for the SAM evidence engine.

Identity lookups never raise: a failed match is logged and treated as
"no match" so that resolution can never block ingestion.
"""
from typing import Optional


class EvidenceError(Exception):
    """Base class for evidence engine errors."""


class NotConfiguredError(EvidenceError):
    """Raised when the repository is used before configure() was called."""

    def __init__(self, component: str = "EvidenceRepository"):
        self.component = component
        super().__init__(f"{component} not configured. Call configure() first.")


class StorageError(EvidenceError):
    """Raised when the underlying store fails to read or write."""

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.cause = cause
        message = f"Storage failure during {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ImportCancelledError(EvidenceError):
    """Raised when a batch import is cancelled before its commit."""

    def __init__(self, operation: str, processed: int):
        self.operation = operation
        self.processed = processed
        super().__init__(f"{operation} cancelled after {processed} items; batch discarded")
