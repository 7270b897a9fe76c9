"""
Exception hierarchy for store errors.

Every error carries a machine-readable code, a human-readable message and
a details mapping, so callers can log or render them uniformly.
"""

from __future__ import annotations

__all__ = [
    "AllocationExhaustedError",
    "BlobIOError",
    "NotFoundError",
    "StorageEngineError",
    "StoreClosedError",
    "StoreError",
]


class StoreError(Exception):
    """
    Base exception for store errors.

    Attributes:
        error: Machine-readable error code
        message: Human-readable description
        details: Additional context
    """

    # nosemgrep: no-default-parameter-values (optional details for exceptions)
    def __init__(
        self,
        error: str,
        message: str,
        details: dict[str, object] | None = None,
    ) -> None:
        self.error = error
        self.message = message
        if details is None:
            self.details: dict[str, object] = {}
        else:
            self.details = details
        super().__init__(message)


class NotFoundError(StoreError):
    """
    No live Item exists for the requested ID.

    Raised both for IDs that were never stored and for Items that expired
    and were removed during the lookup. The only routine error.
    """

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(
            error="not_found",
            message=f"No Item found for ID '{item_id}'",
            details={"id": item_id},
        )


class AllocationExhaustedError(StoreError):
    """Raised when no free ID was found within the retry bound."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            error="id_allocation_exhausted",
            message=f"Failed to allocate a free ID after {attempts} attempts",
            details={"attempts": attempts},
        )


class StorageEngineError(StoreError):
    """Raised for any failure reported by the record index."""

    # nosemgrep: no-default-parameter-values (optional details for exceptions)
    def __init__(
        self,
        operation: str,
        reason: str,
        details: dict[str, object] | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(
            error="storage_engine_error",
            message=f"Record index {operation} failed: {reason}",
            details={"operation": operation, "reason": reason, **(details or {})},
        )


class BlobIOError(StoreError):
    """Raised for filesystem failures on blob files or store directories."""

    # nosemgrep: no-default-parameter-values (optional details for exceptions)
    def __init__(
        self,
        operation: str,
        path: str,
        reason: str,
        details: dict[str, object] | None = None,
    ) -> None:
        self.operation = operation
        self.path = path
        super().__init__(
            error="blob_io_error",
            message=f"Blob {operation} failed for '{path}': {reason}",
            details={"operation": operation, "path": path, "reason": reason, **(details or {})},
        )


class StoreClosedError(StoreError):
    """Raised when an operation is attempted on a closed store."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            error="store_closed",
            message=f"Cannot {operation}: store is closed",
            details={"operation": operation},
        )
