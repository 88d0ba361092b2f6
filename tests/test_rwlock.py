"""
Tests for the reader/writer lock guarding VaultManager state.
"""

import threading
import time

from replivault.core.rwlock import ReadWriteLock


class TestReadWriteLock:
    def test_readers_share(self):
        lock = ReadWriteLock()
        inside = threading.Barrier(3, timeout=5)

        def reader():
            with lock.read_locked():
                inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert not any(t.is_alive() for t in threads)

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []
        lock.acquire_write()

        def reader():
            with lock.read_locked():
                events.append("read")

        t = threading.Thread(target=reader)
        t.start()
        time.sleep(0.05)
        events.append("write-done")
        lock.release_write()
        t.join(timeout=5)
        assert events == ["write-done", "read"]

    def test_writer_waits_for_readers(self):
        lock = ReadWriteLock()
        events = []
        lock.acquire_read()

        def writer():
            with lock.write_locked():
                events.append("write")

        t = threading.Thread(target=writer)
        t.start()
        time.sleep(0.05)
        events.append("read-done")
        lock.release_read()
        t.join(timeout=5)
        assert events == ["read-done", "write"]

    def test_waiting_writer_blocks_new_readers(self):
        lock = ReadWriteLock()
        events = []
        lock.acquire_read()

        def writer():
            with lock.write_locked():
                events.append("write")

        def late_reader():
            with lock.read_locked():
                events.append("late-read")

        w = threading.Thread(target=writer)
        w.start()
        time.sleep(0.05)
        r = threading.Thread(target=late_reader)
        r.start()
        time.sleep(0.05)
        assert events == []
        lock.release_read()
        w.join(timeout=5)
        r.join(timeout=5)
        assert events == ["write", "late-read"]

    def test_released_on_exception(self):
        lock = ReadWriteLock()
        try:
            with lock.write_locked():
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        with lock.read_locked():
            pass
