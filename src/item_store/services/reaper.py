"""
Background expiry sweep.

ExpiryReaper runs a sweep callable on a fixed interval in a daemon thread.
Stopping is a handshake: ``stop`` sets the stop event and then joins the
thread, so once it returns the loop has exited and no further sweep runs.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from item_store.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger(__name__)

DEFAULT_SWEEP_INTERVAL = 60.0


class ExpiryReaper:
    """Periodically invoke ``sweep`` until stopped."""

    def __init__(
        self,
        sweep: Callable[[], int],
        interval: float = DEFAULT_SWEEP_INTERVAL,
        *,
        name: str = "item-store-reaper",
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._sweep = sweep
        self._interval = interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._sweeps = 0

    @property
    def interval(self) -> float:
        """Seconds between sweeps."""
        return self._interval

    @property
    def sweeps(self) -> int:
        """Number of sweep iterations run so far, failed ones included."""
        return self._sweeps

    def is_alive(self) -> bool:
        """Return whether the loop thread is still running."""
        return self._thread.is_alive()

    def start(self) -> None:
        """Start the background loop."""
        logger.debug("Starting expiry reaper", extra={"interval_seconds": self._interval})
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """
        Signal the loop to exit and wait for it.

        A sweep in progress is allowed to finish first. Calling ``stop`` on
        a reaper that was never started only sets the stop event.
        """
        self._stop.set()
        if self._thread.ident is None:
            return
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Expiry reaper did not stop in time", extra={"timeout_seconds": timeout})
        else:
            logger.debug("Expiry reaper stopped", extra={"sweeps": self._sweeps})

    def _run(self) -> None:
        # Event.wait returns True only once stop() was called
        while not self._stop.wait(self._interval):
            self.run_once()

    def run_once(self) -> None:
        """Run a single sweep, logging instead of raising on failure."""
        self._sweeps += 1
        try:
            deleted = self._sweep()
        except Exception:
            logger.exception("Deletion of expired Items failed")
            return
        if deleted:
            logger.info("Deleted expired Items", extra={"count": deleted})
