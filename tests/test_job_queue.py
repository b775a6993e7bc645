from __future__ import annotations

import threading

import pytest

from gphotos_upload.job_queue import JobQueue
from gphotos_upload.models import QueueClosedError


def test_fifo_order_and_drain_after_close():
    q = JobQueue(capacity=5)
    for i in range(3):
        assert q.put(i)
    q.close()

    assert [q.get(), q.get(), q.get()] == [0, 1, 2]
    assert q.get() is None
    assert q.get() is None


def test_put_blocks_when_full_until_a_slot_frees():
    q = JobQueue(capacity=10)
    for i in range(10):
        q.put(i)
    assert len(q) == 10

    done = threading.Event()

    def producer():
        q.put("overflow")
        done.set()

    t = threading.Thread(target=producer)
    t.start()
    assert not done.wait(0.2)
    assert len(q) == 10

    assert q.get() == 0
    assert done.wait(2)
    t.join(2)
    assert len(q) == 10


def test_put_timeout_returns_false_without_dropping():
    q = JobQueue(capacity=1)
    q.put("a")
    assert q.put("b", timeout=0.05) is False
    assert len(q) == 1
    assert q.get() == "a"


def test_put_after_close_is_an_error():
    q = JobQueue()
    q.close()
    with pytest.raises(QueueClosedError):
        q.put("late")


def test_close_twice_is_an_error():
    q = JobQueue()
    q.close()
    with pytest.raises(QueueClosedError):
        q.close()


def test_close_wakes_all_waiting_consumers():
    q = JobQueue(capacity=2)
    results = []
    lock = threading.Lock()

    def consumer():
        item = q.get()
        with lock:
            results.append(item)

    threads = [threading.Thread(target=consumer) for _ in range(4)]
    for t in threads:
        t.start()

    q.close()
    for t in threads:
        t.join(2)
        assert not t.is_alive()
    assert results == [None] * 4


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        JobQueue(capacity=0)
