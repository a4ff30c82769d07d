import threading
import time
from unittest import mock

import pytest

from fileserver.config import Config
from fileserver.pool import WorkerPool


class BlockingEngine:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.release = threading.Event()
        self.active = 0
        self.peak = 0
        self.handled = 0

    def handle_connection(self, conn) -> None:
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        self.release.wait(timeout=5)
        with self.lock:
            self.active -= 1
            self.handled += 1


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_at_most_concurrency_connections_in_flight():
    engine = BlockingEngine()
    pool = WorkerPool(Config(concurrency=2), engine)
    pool.start()
    try:
        for i in range(6):
            pool.submit(mock.Mock(), ("127.0.0.1", 1000 + i))

        assert wait_for(lambda: engine.active == 2)
        time.sleep(0.2)
        assert engine.active == 2
        assert pool._queue.qsize() == 4

        engine.release.set()
        assert wait_for(lambda: engine.handled == 6)
        assert engine.peak == 2
    finally:
        engine.release.set()
        pool.stop()


def test_failing_connection_does_not_kill_worker():
    handled = []

    class FlakyEngine:
        def handle_connection(self, conn):
            if conn == "boom":
                raise RuntimeError("boom")
            handled.append(conn)

    pool = WorkerPool(Config(concurrency=1), FlakyEngine())
    pool.start()
    try:
        pool.submit("boom", ("127.0.0.1", 1))
        pool.submit("ok", ("127.0.0.1", 2))
        assert wait_for(lambda: handled == ["ok"])
    finally:
        pool.stop()


def test_submit_after_stop_closes_connection():
    pool = WorkerPool(Config(concurrency=1), BlockingEngine())
    pool.start()
    pool.stop()
    conn = mock.Mock()
    pool.submit(conn, ("127.0.0.1", 1))
    conn.close.assert_called_once_with()


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        WorkerPool(Config(concurrency=0), BlockingEngine())
