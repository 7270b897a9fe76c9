"""
File-backed blob storage.

Stores each payload as a single file named exactly by the Item ID in a
root directory. Raises OSError on filesystem failures; the Store turns
those into BlobIOError.
"""

from __future__ import annotations

import shutil
from typing import TYPE_CHECKING, BinaryIO

if TYPE_CHECKING:
    from pathlib import Path

_COPY_BUFFER_SIZE = 1 << 16


class FileBlobStore:
    """
    File-backed binary object store.

    Objects are stored as {id} files in the root directory.
    """

    def __init__(self, root_dir: Path) -> None:
        self.root = root_dir
        self.root.mkdir(mode=0o700, parents=True, exist_ok=True)

    def path_for(self, item_id: str) -> Path:
        """Return the file path for an ID. Rejects IDs escaping the root."""
        if not item_id or "/" in item_id or "\\" in item_id or item_id in (".", ".."):
            raise ValueError(f"Invalid blob ID: {item_id!r}")
        return self.root / item_id

    def create(self, item_id: str, source: BinaryIO) -> int:
        """
        Create the blob file and copy the whole stream into it.

        A leftover file under the same ID is truncated. The destination is closed before
        returning; the source is left to the caller.

        Returns:
            Number of bytes written
        """
        path = self.path_for(item_id)
        with path.open("wb") as dest:
            shutil.copyfileobj(source, dest, _COPY_BUFFER_SIZE)
            return dest.tell()

    def open(self, item_id: str) -> BinaryIO:
        """Open a blob for reading. Raises FileNotFoundError if absent."""
        return self.path_for(item_id).open("rb")

    def exists(self, item_id: str) -> bool:
        """Check whether a blob file exists."""
        return self.path_for(item_id).is_file()

    def delete(self, item_id: str) -> bool:
        """Delete a single blob. Returns True if it existed."""
        try:
            self.path_for(item_id).unlink()
        except FileNotFoundError:
            return False
        return True

    def ids(self) -> set[str]:
        """Return the IDs of all stored blobs."""
        return {path.name for path in self.root.iterdir() if path.is_file()}

    def count(self) -> int:
        """Return the number of stored blobs."""
        return sum(1 for path in self.root.iterdir() if path.is_file())
