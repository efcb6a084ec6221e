"""Periodic artifact expiry on a background thread."""

from __future__ import annotations

import threading
from typing import Optional

import structlog

from app.config import settings
from app.storage.artifacts import ArtifactStore, SweepResult

logger = structlog.get_logger(__name__)


class CleanupScheduler:
    """Runs ``store.sweep()`` every ``interval_seconds`` until stopped.

    One thread performs every sweep, so sweeps never overlap. ``start`` is
    idempotent; ``stop`` wakes the thread, waits for it and runs a final
    sweep unless the last one is still in progress.
    """

    def __init__(
        self,
        store: ArtifactStore,
        interval_seconds: Optional[float] = None,
        max_age_seconds: Optional[float] = None,
    ):
        self.store = store
        self.interval_seconds = interval_seconds or settings.cleanup_interval_seconds
        self.max_age_seconds = max_age_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._loop, name="artifact-cleanup", daemon=True)
            self._thread.start()
        logger.info("cleanup_scheduler_started", interval_seconds=self.interval_seconds)

    def stop(self, timeout: Optional[float] = 10.0, final_sweep: bool = True) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._stop.set()
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("cleanup_sweep_still_running", msg="Skipping final sweep")
        elif final_sweep:
            self.run_once()
        logger.info("cleanup_scheduler_stopped", runs=self.runs)

    def request_stop(self) -> None:
        self._stop.set()

    def run_once(self) -> Optional[SweepResult]:
        """Sweep now; failures are logged and the schedule continues."""
        try:
            result = self.store.sweep(max_age=self.max_age_seconds)
        except Exception:
            logger.exception("cleanup_sweep_failed")
            return None
        self.runs += 1
        return result

    def run_forever(self) -> None:
        """Sweep on the schedule in the calling thread until ``stop`` is signalled."""
        self._loop()

    def _loop(self) -> None:
        self.run_once()
        while not self._stop.wait(self.interval_seconds):
            self.run_once()
