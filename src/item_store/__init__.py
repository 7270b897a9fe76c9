"""item_store: local content store pairing Item records with blob files."""

from item_store.core.exceptions import (
    AllocationExhaustedError,
    BlobIOError,
    NotFoundError,
    StorageEngineError,
    StoreClosedError,
    StoreError,
)
from item_store.schemas import Item, ReconcileReport
from item_store.services.record_index import RecordIndex, SqliteRecordIndex
from item_store.store import Store

__all__ = [
    "AllocationExhaustedError",
    "BlobIOError",
    "Item",
    "NotFoundError",
    "ReconcileReport",
    "RecordIndex",
    "SqliteRecordIndex",
    "StorageEngineError",
    "Store",
    "StoreClosedError",
    "StoreError",
]
