"""Bounded job queue shared by the producer and the upload workers."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Generic, TypeVar

from gphotos_upload.models import QueueClosedError

T = TypeVar("T")

DEFAULT_CAPACITY = 10


class JobQueue(Generic[T]):
    """FIFO with a fixed capacity and an explicit close.

    ``put`` blocks while the queue is full, ``get`` blocks while it is empty
    and still open. Once closed and drained, ``get`` returns ``None`` so that
    every waiting worker can exit.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._items: deque[T] = deque()
        self._closed = False
        self._cond = threading.Condition()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def put(self, item: T, timeout: float | None = None) -> bool:
        """Enqueue *item*, waiting for room.

        Returns False only if *timeout* expires before a slot frees up.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._closed:
                    raise QueueClosedError("put() on a closed job queue")
                if len(self._items) < self._capacity:
                    break
                if deadline is None:
                    self._cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return False
                    self._cond.wait(remaining)
            self._items.append(item)
            self._cond.notify_all()
            return True

    def get(self) -> T | None:
        """Dequeue the next item; ``None`` means closed and drained."""
        with self._cond:
            while not self._items and not self._closed:
                self._cond.wait()
            if not self._items:
                return None
            item = self._items.popleft()
            self._cond.notify_all()
            return item

    def close(self) -> None:
        """Signal that no more items will be enqueued."""
        with self._cond:
            if self._closed:
                raise QueueClosedError("job queue already closed")
            self._closed = True
            self._cond.notify_all()
