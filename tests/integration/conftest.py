"""
Fixtures for integration tests.

These tests use the real Store with the SQLite record index and actual
blob files in a temporary directory.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from item_store.store import Store

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    """Base directory for a store."""
    return tmp_path / "store"


@pytest.fixture
def store(store_dir: Path) -> Iterator[Store]:
    """
    Open a real store with auto cleanup.

    The reaper interval is long so only explicit sweeps and reads expire
    Items.
    """
    store = Store.open(store_dir, True, sweep_interval=3600)
    yield store
    store.close()
