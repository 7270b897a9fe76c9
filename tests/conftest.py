"""
Shared test configuration and fixtures.

This file contains pytest configuration that applies to all tests.
Test-type-specific fixtures are defined in their respective conftest.py files.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from item_store.logging import LOGGER_NAMESPACE

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture(autouse=True)
def reset_store_logger() -> Iterator[None]:
    """
    Undo setup_logging between tests.

    setup_logging disables propagation on the store logger, which would
    hide records from caplog in later tests.
    """
    yield
    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
