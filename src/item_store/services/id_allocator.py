"""
Random short-ID allocation.

IDs are 32 random bits rendered in base58, which drops the visually
ambiguous characters 0, O, I and l and is safe in URLs and file names.
2^32 possible IDs keep collisions rare for realistic store sizes while
the IDs stay at most six characters long.
"""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

import base58

from item_store.core.exceptions import AllocationExhaustedError
from item_store.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from item_store.services.record_index import RecordIndex

logger = get_logger(__name__)

ID_BYTES = 4
MAX_ATTEMPTS = 32


def encode_id(raw: bytes) -> str:
    """Render random bytes as a base58 ID."""
    return base58.b58encode(raw).decode("ascii")


class IdAllocator:
    """
    Allocate IDs not currently used in a record index.

    Each attempt draws fresh randomness and probes the index once; no
    writes happen here, so two concurrent allocations may still race for
    the same ID and the later insert fails in the index.
    """

    def __init__(
        self,
        index: RecordIndex,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        random_bytes: Callable[[int], bytes] = secrets.token_bytes,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._index = index
        self._max_attempts = max_attempts
        self._random_bytes = random_bytes

    @property
    def max_attempts(self) -> int:
        """Return the retry bound."""
        return self._max_attempts

    def allocate(self) -> str:
        """
        Return an ID with no record in the index.

        Raises:
            AllocationExhaustedError: Every attempt hit an existing record
            StorageEngineError: The index probe failed
        """
        for attempt in range(1, self._max_attempts + 1):
            candidate = encode_id(self._random_bytes(ID_BYTES))
            if self._index.get(candidate) is None:
                return candidate
            logger.debug("ID collision, drawing again", extra={"id": candidate, "attempt": attempt})

        raise AllocationExhaustedError(self._max_attempts)
