"""
Store: Items with their blob files and TTL expiry.

A Store keeps an index of all Items in a record index and the payloads as
plain files. Every Item has exactly one record and one blob file, except
while a put or delete is in progress:

- put inserts the record first, then writes the blob. A failed blob write
  removes the record again.
- delete removes the record first, then the blob. A crash in between
  leaves an orphan blob, which no lookup ever returns; a record pointing
  at a missing file would be worse for readers.

Neither protocol is atomic as a whole. A get racing a put may see a record
whose blob is not written yet, and a get racing the reaper may find the
record already gone. Both are accepted.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from item_store.core.exceptions import (
    BlobIOError,
    NotFoundError,
    StoreClosedError,
    StoreError,
)
from item_store.logging import get_logger
from item_store.schemas import ReconcileReport, as_utc, utc_now
from item_store.services.blob_store import FileBlobStore
from item_store.services.id_allocator import IdAllocator
from item_store.services.reaper import DEFAULT_SWEEP_INTERVAL, ExpiryReaper
from item_store.services.record_index import SqliteRecordIndex

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from types import TracebackType

    from item_store.schemas import Item
    from item_store.services.record_index import RecordIndex

logger = get_logger(__name__)

DIR_DATABASE = "db"
DIR_STORAGE = "data"
DATABASE_FILENAME = "items.db"


def _make_dir(path: Path) -> None:
    if path.exists():
        return
    try:
        path.mkdir(mode=0o700, parents=True)
    except OSError as e:
        logger.error("Cannot create directory", extra={"directory": str(path), "error": str(e)})
        raise BlobIOError("mkdir", str(path), str(e)) from e


def _close_after_failure(stream: BinaryIO) -> None:
    """Close the payload stream of a failed put. The put's own error wins."""
    try:
        stream.close()
    except OSError as e:
        logger.error("Failed to close payload stream", extra={"error": str(e)})


class Store:
    """
    Stores an index of all Items as well as the pure files.

    Use ``Store.open`` to create one from a base directory. With
    ``auto_cleanup`` the store deletes expired Items when they are read and
    runs a background reaper deleting them every ``sweep_interval``
    seconds.
    """

    def __init__(
        self,
        base_dir: Path,
        index: RecordIndex,
        blobs: FileBlobStore,
        *,
        auto_cleanup: bool,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], datetime] = utc_now,
        allocator: IdAllocator | None = None,
    ) -> None:
        self._base_dir = base_dir
        self._index = index
        self._blobs = blobs
        self._cleanup = auto_cleanup
        self._clock = clock
        self._allocator = allocator if allocator is not None else IdAllocator(index)
        self._closed = False
        self._close_lock = threading.Lock()
        self._reaper: ExpiryReaper | None = None
        if auto_cleanup:
            self._reaper = ExpiryReaper(self.sweep, sweep_interval)

    @classmethod
    def open(
        cls,
        base_dir: str | Path,
        auto_cleanup: bool,
        *,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        reconcile_on_open: bool = False,
        index: RecordIndex | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> Store:
        """
        Open or initialize a Store in the given directory.

        Creates ``base_dir`` with its ``db`` and ``data`` subdirectories
        when missing. Without an explicit ``index`` the SQLite index in
        ``db/items.db`` is used.

        Args:
            base_dir: Directory holding the store
            auto_cleanup: Delete expired Items on read and in the background
            sweep_interval: Seconds between background sweeps
            reconcile_on_open: Repair record/blob mismatches before use
            index: Record index to use instead of the SQLite default
            clock: Source of the current time; naive values are read as UTC

        Raises:
            BlobIOError: A directory could not be created
            StorageEngineError: The record index failed to open
            ValueError: ``sweep_interval`` is not positive; the index is
                closed again
        """
        base = Path(base_dir)
        logger.info("Opening Store", extra={"directory": str(base)})

        for directory in (base, base / DIR_DATABASE, base / DIR_STORAGE):
            _make_dir(directory)

        if index is None:
            index = SqliteRecordIndex(base / DIR_DATABASE / DATABASE_FILENAME)

        try:
            store = cls(
                base,
                index,
                FileBlobStore(base / DIR_STORAGE),
                auto_cleanup=auto_cleanup,
                sweep_interval=sweep_interval,
                clock=clock,
            )
            if reconcile_on_open:
                store.reconcile()
        except BaseException:
            index.close()
            raise

        store.start()
        return store

    @property
    def base_dir(self) -> Path:
        """Return the store's base directory."""
        return self._base_dir

    @property
    def database_dir(self) -> Path:
        """Return the record index subdirectory."""
        return self._base_dir / DIR_DATABASE

    @property
    def storage_dir(self) -> Path:
        """Return the blob file subdirectory."""
        return self._blobs.root

    @property
    def index(self) -> RecordIndex:
        """Return the underlying record index."""
        return self._index

    @property
    def blobs(self) -> FileBlobStore:
        """Return the underlying blob store."""
        return self._blobs

    @property
    def auto_cleanup(self) -> bool:
        return self._cleanup

    @property
    def reaper(self) -> ExpiryReaper | None:
        """Return the background reaper, if cleanup is enabled."""
        return self._reaper

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the background reaper. Does nothing without auto cleanup."""
        self._check_open("start")
        if self._reaper is not None and not self._reaper.is_alive():
            self._reaper.start()

    def _now(self) -> datetime:
        return as_utc(self._clock())

    def _check_open(self, operation: str) -> None:
        if self._closed:
            raise StoreClosedError(operation)

    def __enter__(self) -> Store:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """
        Close the Store and its record index.

        The reaper is stopped and waited for before the index is closed, so
        no sweep runs against a closed index. Calling close again is a
        no-op.
        """
        with self._close_lock:
            if self._closed:
                logger.warning("Store already closed", extra={"directory": str(self._base_dir)})
                return

            logger.info("Closing Store", extra={"directory": str(self._base_dir)})

            if self._reaper is not None:
                self._reaper.stop()

            self._closed = True
            self._index.close()

    def put(self, item: Item, stream: BinaryIO) -> str:
        """
        Put a new Item inside the Store.

        Both a record and a blob file are created. The stream is read into
        the blob file and closed afterwards, whatever the outcome. The
        Item's ``id`` and ``created`` fields are assigned here.

        Returns:
            The allocated ID

        Raises:
            AllocationExhaustedError: No free ID was found
            StorageEngineError: The record could not be inserted
            BlobIOError: The blob could not be written or the payload stream
                failed to close; the record was removed again
        """
        try:
            self._check_open("put")
            logger.debug("Requested insertion of Item into the Store")

            try:
                item_id = self._allocator.allocate()
            except StoreError as e:
                logger.error("Failed to create an ID for a new Item", extra={"error": str(e)})
                raise

            stored = item.model_copy(update={"id": item_id, "created": self._now()})
            logger.debug("Insert Item with assigned ID", extra={"id": item_id})

            try:
                self._index.insert(stored)
            except StoreError as e:
                logger.error("Failed to insert Item into database", extra={"id": item_id, "error": str(e)})
                raise

            self._write_blob(item_id, stream)
        except BaseException:
            _close_after_failure(stream)
            raise

        self._close_source(item_id, stream)
        return item_id

    def _close_source(self, item_id: str, stream: BinaryIO) -> None:
        # The Item is only handed out once its payload stream closed cleanly
        try:
            stream.close()
        except OSError as e:
            logger.error("Failed to close Item's payload stream", extra={"id": item_id, "error": str(e)})
            self._rollback_put(item_id)
            raise BlobIOError("close", str(self._blobs.path_for(item_id)), str(e), {"id": item_id}) from e

    def _write_blob(self, item_id: str, stream: BinaryIO) -> None:
        try:
            size = self._blobs.create(item_id, stream)
        except OSError as e:
            logger.error("Failed to write Item's file", extra={"id": item_id, "error": str(e)})
            self._rollback_put(item_id)
            raise BlobIOError("write", str(self._blobs.path_for(item_id)), str(e), {"id": item_id}) from e
        except Exception:
            logger.exception("Failed to read Item's payload", extra={"id": item_id})
            self._rollback_put(item_id)
            raise

        logger.debug("Stored Item's file", extra={"id": item_id, "size": size})

    def _rollback_put(self, item_id: str) -> None:
        """Undo a half-finished put. Failures are logged; the original error wins."""
        try:
            self._blobs.delete(item_id)
        except OSError as e:
            logger.error("Failed to remove partial file", extra={"id": item_id, "error": str(e)})

        try:
            self._index.delete(item_id)
        except StoreError as e:
            logger.error("Failed to roll back Item record", extra={"id": item_id, "error": str(e)})
        else:
            logger.info("Rolled back Item after failed file write", extra={"id": item_id})

    def get(self, item_id: str) -> Item:
        """
        Get an Item by its ID. The Item's file can be accessed with get_file.

        With auto cleanup, an Item whose ``expires`` is at or before now is
        deleted and reported as not found.

        Raises:
            NotFoundError: No live Item for this ID
            StorageEngineError: The record index failed
            BlobIOError: Deleting an expired Item's file failed
        """
        self._check_open("get")
        logger.debug("Requested Item from Store", extra={"id": item_id})

        try:
            item = self._index.get(item_id)
        except StoreError:
            logger.error("Requesting Item failed", extra={"id": item_id})
            raise

        if item is None:
            logger.debug("Requested Item was not found", extra={"id": item_id})
            raise NotFoundError(item_id)

        if self._cleanup and item.is_expired(self._now()):
            logger.info(
                "Requested Item is expired, will be deleted",
                extra={"id": item_id, "expires": item.expires.isoformat()},
            )
            try:
                self.delete(item_id)
            except StoreError as e:
                logger.error("Failed to delete expired Item", extra={"id": item_id, "error": str(e)})
                raise
            raise NotFoundError(item_id)

        return item

    def get_file(self, item_id: str) -> BinaryIO:
        """
        Open a stored Item's file for reading.

        No expiry check happens here; call ``get`` first for that. The
        caller must close the returned file.

        Raises:
            NotFoundError: There is no file for this ID
            BlobIOError: The file exists but could not be opened
        """
        self._check_open("get file")
        try:
            return self._blobs.open(item_id)
        except (FileNotFoundError, ValueError) as e:
            raise NotFoundError(item_id) from e
        except OSError as e:
            logger.error("Failed to open Item's file", extra={"id": item_id, "error": str(e)})
            raise BlobIOError("open", str(self._blobs.path_for(item_id)), str(e), {"id": item_id}) from e

    def delete(self, item_id: str) -> bool:
        """
        Delete an Item. Both the record and the file will be removed.

        The record goes first. A record or file that is already gone, e.g.
        because the reaper and a reader both deleted the same expired Item,
        is not an error.

        Returns:
            True if this call removed the record, False if it was absent

        Raises:
            StorageEngineError: Removing the record failed
            BlobIOError: Removing the file failed; the record is gone already
        """
        self._check_open("delete")
        logger.debug("Requested deletion of Item", extra={"id": item_id})

        try:
            removed = self._index.delete(item_id)
        except StoreError as e:
            logger.error("Failed to delete Item from database", extra={"id": item_id, "error": str(e)})
            raise

        if not removed:
            logger.debug("Item record already absent", extra={"id": item_id})

        try:
            blob_removed = self._blobs.delete(item_id)
        except ValueError:
            blob_removed = False
        except OSError as e:
            logger.error("Failed to delete Item's file", extra={"id": item_id, "error": str(e)})
            raise BlobIOError("delete", str(self._blobs.path_for(item_id)), str(e), {"id": item_id}) from e

        if removed and not blob_removed:
            logger.warning("Deleted Item had no file", extra={"id": item_id})

        return removed

    def sweep(self) -> int:
        """
        Delete every Item whose ``expires`` lies before now.

        The first failing deletion aborts the sweep and is raised.

        Returns:
            Number of Items removed by this sweep
        """
        self._check_open("sweep")
        expired = self._index.find_expired_before(self._now())

        deleted = 0
        for item in expired:
            logger.debug("Delete expired Item", extra={"id": item.id})
            if self.delete(item.id):
                deleted += 1
        return deleted

    def reconcile(self) -> ReconcileReport:
        """
        Remove orphan blob files and records without a file.

        Only safe while no other writer uses the store, since a put in
        progress looks exactly like a record without a file.
        """
        self._check_open("reconcile")

        record_ids = self._index.ids()
        try:
            blob_ids = self._blobs.ids()
        except OSError as e:
            raise BlobIOError("list", str(self._blobs.root), str(e)) from e

        orphan_blobs = sorted(blob_ids - record_ids)
        dangling_records = sorted(record_ids - blob_ids)

        for item_id in orphan_blobs:
            try:
                self._blobs.delete(item_id)
            except OSError as e:
                raise BlobIOError("delete", str(self._blobs.path_for(item_id)), str(e), {"id": item_id}) from e

        for item_id in dangling_records:
            self._index.delete(item_id)

        report = ReconcileReport(orphan_blobs=orphan_blobs, dangling_records=dangling_records)
        if report.total:
            logger.warning(
                "Reconciled store",
                extra={"orphan_blobs": orphan_blobs, "dangling_records": dangling_records},
            )
        return report
