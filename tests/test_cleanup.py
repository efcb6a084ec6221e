"""Tests for the background cleanup scheduler."""

import threading
import time

import pytest

from app.errors import NotFoundError
from app.storage.artifacts import ArtifactStore, SweepResult
from app.workers.cleanup import CleanupScheduler


class _CountingStore(ArtifactStore):
    """Store stub that only records sweeps."""

    def __init__(self, fail: bool = False):
        self.sweeps = 0
        self.fail = fail

    def put(self, content, filename, source_operation):
        raise NotImplementedError

    def get(self, name):
        raise NotImplementedError

    def stat(self, name):
        raise NotImplementedError

    def delete(self, name):
        raise NotImplementedError

    def sweep(self, max_age=None, now=None):
        self.sweeps += 1
        if self.fail:
            raise OSError("disk went away")
        return SweepResult(scanned=1)


class _BlockingStore(_CountingStore):
    """Sweep blocks until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def sweep(self, max_age=None, now=None):
        self.sweeps += 1
        self.entered.set()
        self.release.wait(5)
        return SweepResult(scanned=1)


class TestRunOnce:
    def test_sweeps_expired_artifacts(self, store, clock):
        info = store.put(b"x", "a.pdf", "merge")
        clock.advance(3 * 3600)
        result = CleanupScheduler(store, interval_seconds=60).run_once()
        assert result.removed == 1
        with pytest.raises(NotFoundError):
            store.get(info.name)

    def test_failure_is_logged_not_raised(self):
        failing = _CountingStore(fail=True)
        scheduler = CleanupScheduler(failing, interval_seconds=60)
        assert scheduler.run_once() is None
        assert scheduler.runs == 0
        assert failing.sweeps == 1

    def test_custom_max_age(self, store, clock):
        store.put(b"x", "a.pdf", "merge")
        clock.advance(120)
        assert CleanupScheduler(store, interval_seconds=60, max_age_seconds=60).run_once().removed == 1


class TestLifecycle:
    def test_start_sweeps_immediately(self):
        fake = _CountingStore()
        scheduler = CleanupScheduler(fake, interval_seconds=3600)
        scheduler.start()
        deadline = time.monotonic() + 5
        while fake.sweeps == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        scheduler.stop(final_sweep=False)
        assert fake.sweeps == 1

    def test_start_is_idempotent(self):
        scheduler = CleanupScheduler(_CountingStore(), interval_seconds=3600)
        scheduler.start()
        thread = scheduler._thread
        scheduler.start()
        assert scheduler._thread is thread
        scheduler.stop()
        assert not scheduler.running

    def test_stop_runs_final_sweep(self):
        fake = _CountingStore()
        scheduler = CleanupScheduler(fake, interval_seconds=3600)
        scheduler.start()
        scheduler.stop()
        assert fake.sweeps >= 2
        assert not scheduler.running

    def test_stop_without_start(self):
        fake = _CountingStore()
        CleanupScheduler(fake, interval_seconds=60).stop()
        assert fake.sweeps == 0

    def test_periodic_sweeps(self):
        fake = _CountingStore()
        scheduler = CleanupScheduler(fake, interval_seconds=0.02)
        scheduler.start()
        deadline = time.monotonic() + 5
        while fake.sweeps < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
        scheduler.stop(final_sweep=False)
        assert fake.sweeps >= 3

    def test_run_forever_returns_after_request_stop(self):
        fake = _CountingStore()
        scheduler = CleanupScheduler(fake, interval_seconds=3600)
        scheduler.request_stop()
        scheduler.run_forever()
        assert fake.sweeps == 1

    def test_stop_skips_final_sweep_while_one_is_running(self):
        blocking = _BlockingStore()
        scheduler = CleanupScheduler(blocking, interval_seconds=3600)
        scheduler.start()
        assert blocking.entered.wait(5)
        scheduler.stop(timeout=0.05)
        assert blocking.sweeps == 1
        blocking.release.set()
