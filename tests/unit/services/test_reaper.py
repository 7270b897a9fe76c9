"""Unit tests for the background expiry reaper."""

from __future__ import annotations

import logging
import threading
import time

import pytest

from item_store.core.exceptions import StorageEngineError
from item_store.services.reaper import DEFAULT_SWEEP_INTERVAL, ExpiryReaper
from tests.factories import wait_for


class CountingSweep:
    """Sweep callable that counts invocations and can fail on demand."""

    def __init__(self, failures: int = 0) -> None:
        self.calls = 0
        self.failures = failures
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            self.calls += 1
            if self.failures > 0:
                self.failures -= 1
                raise StorageEngineError("find", "simulated engine failure")
        return 1


@pytest.mark.unit
class TestExpiryReaper:
    """Tests for the sweep loop and its stop handshake."""

    def test_default_interval_is_one_minute(self) -> None:
        """Sweeps run once per minute unless configured otherwise."""
        reaper = ExpiryReaper(CountingSweep())

        assert reaper.interval == DEFAULT_SWEEP_INTERVAL == 60.0

    def test_invalid_interval_rejected(self) -> None:
        """A non-positive interval is rejected."""
        with pytest.raises(ValueError):
            ExpiryReaper(CountingSweep(), interval=0)

    def test_sweeps_periodically(self) -> None:
        """The sweep runs repeatedly on its interval."""
        sweep = CountingSweep()
        reaper = ExpiryReaper(sweep, interval=0.01)

        reaper.start()
        try:
            assert wait_for(lambda: sweep.calls >= 3)
        finally:
            reaper.stop()

    def test_no_sweep_before_first_interval(self) -> None:
        """The first sweep waits one full interval."""
        sweep = CountingSweep()
        reaper = ExpiryReaper(sweep, interval=3600)

        reaper.start()
        time.sleep(0.05)
        reaper.stop()

        assert sweep.calls == 0

    def test_stop_waits_for_loop_exit(self) -> None:
        """After stop returns the thread has exited and no sweep runs again."""
        sweep = CountingSweep()
        reaper = ExpiryReaper(sweep, interval=0.01)
        reaper.start()
        assert wait_for(lambda: sweep.calls >= 1)

        reaper.stop()
        calls_at_stop = sweep.calls
        time.sleep(0.1)

        assert reaper.is_alive() is False
        assert sweep.calls == calls_at_stop

    def test_stop_interrupts_long_wait(self) -> None:
        """Stopping does not wait for the rest of the interval."""
        reaper = ExpiryReaper(CountingSweep(), interval=3600)
        reaper.start()

        started = time.monotonic()
        reaper.stop()

        assert time.monotonic() - started < 5
        assert reaper.is_alive() is False

    def test_stop_without_start(self) -> None:
        """Stopping a reaper that never ran returns immediately."""
        reaper = ExpiryReaper(CountingSweep(), interval=0.01)

        reaper.stop()

        assert reaper.is_alive() is False

    def test_failed_sweep_is_logged_and_loop_continues(self, caplog: pytest.LogCaptureFixture) -> None:
        """A failing sweep does not end the loop."""
        sweep = CountingSweep(failures=2)
        reaper = ExpiryReaper(sweep, interval=0.01)

        with caplog.at_level(logging.ERROR, logger="item_store"):
            reaper.start()
            try:
                assert wait_for(lambda: sweep.calls >= 4)
                assert reaper.is_alive() is True
            finally:
                reaper.stop()

        messages = [record.getMessage() for record in caplog.records]
        assert messages.count("Deletion of expired Items failed") == 2

    def test_run_once_counts_sweeps(self) -> None:
        """run_once performs one sweep, failed or not."""
        sweep = CountingSweep(failures=1)
        reaper = ExpiryReaper(sweep, interval=0.01)

        reaper.run_once()
        reaper.run_once()

        assert sweep.calls == 2
        assert reaper.sweeps == 2
