"""
Tests for the maintenance scheduler and the reader/writer lock.
"""

import threading
import time

from field_arbiter.concurrency import ReadWriteLock
from field_arbiter.scheduler import MaintenanceScheduler


class TestMaintenanceScheduler:
    """Tests for MaintenanceScheduler."""

    def test_run_once(self):
        calls = []
        scheduler = MaintenanceScheduler(lambda: calls.append(1), interval_seconds=60)

        result = scheduler.run_once()

        assert calls == [1]
        assert result.success is True
        assert result.duration_seconds is not None
        assert scheduler.run_count == 1
        assert scheduler.last_run is result

    def test_job_errors_recorded(self):
        def job():
            raise RuntimeError("sweep failed")

        scheduler = MaintenanceScheduler(job, interval_seconds=60)
        result = scheduler.run_once()

        assert result.success is False
        assert result.errors == ["sweep failed"]

    def test_background_loop(self):
        ran = threading.Event()
        scheduler = MaintenanceScheduler(ran.set, interval_seconds=0.01)

        scheduler.start()
        assert ran.wait(timeout=5)
        scheduler.stop(timeout=5)

        assert not scheduler.is_running
        assert scheduler.run_count >= 1

    def test_stop_without_start(self):
        scheduler = MaintenanceScheduler(lambda: None, interval_seconds=60)
        scheduler.stop()
        assert not scheduler.is_running

    def test_stop_does_not_wait_for_interval(self):
        scheduler = MaintenanceScheduler(lambda: None, interval_seconds=3600)
        scheduler.start()

        started = time.monotonic()
        scheduler.stop(timeout=5)

        assert time.monotonic() - started < 5
        assert scheduler.run_count == 0


class TestReadWriteLock:
    """Tests for ReadWriteLock."""

    def test_readers_share(self):
        lock = ReadWriteLock()
        inside = threading.Barrier(2, timeout=5)

        def reader():
            with lock.read_locked():
                inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert not inside.broken

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []

        lock.acquire_write()

        def reader():
            with lock.read_locked():
                events.append("read")

        thread = threading.Thread(target=reader)
        thread.start()
        time.sleep(0.05)
        events.append("write-done")
        lock.release_write()
        thread.join(timeout=5)

        assert events == ["write-done", "read"]

    def test_counter_consistency(self):
        lock = ReadWriteLock()
        counter = {"value": 0}

        def writer():
            for _ in range(200):
                with lock.write_locked():
                    current = counter["value"]
                    counter["value"] = current + 1

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert counter["value"] == 800
