"""Core infrastructure components."""

from item_store.core.exceptions import (
    AllocationExhaustedError,
    BlobIOError,
    NotFoundError,
    StorageEngineError,
    StoreClosedError,
    StoreError,
)

__all__ = [
    "AllocationExhaustedError",
    "BlobIOError",
    "NotFoundError",
    "StorageEngineError",
    "StoreClosedError",
    "StoreError",
]
