"""Streaming sinks for incremental run output.

A sink receives text chunks while a run executes and is closed exactly once
when the run succeeds, fails or suspends. The engine never retracts emitted
chunks; consumers learn about failures out-of-band (see ``QueueSink``).
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterator
from typing import Protocol

logger = logging.getLogger(__name__)


class StreamSink(Protocol):
    def emit(self, chunk: str) -> None: ...

    def close(self) -> None: ...


class CollectingSink:
    """Keeps every chunk in memory. Handy for the CLI and tests."""

    def __init__(self) -> None:
        self.chunks: list[str] = []
        self.close_count = 0

    def emit(self, chunk: str) -> None:
        self.chunks.append(chunk)

    def close(self) -> None:
        self.close_count += 1

    @property
    def text(self) -> str:
        return "".join(self.chunks)


_CLOSED = object()


class QueueSink:
    """Thread-safe sink that a consumer drains by iterating.

    The producer (a run executing on a worker thread) emits chunks; the consumer
    (an HTTP streaming response) iterates until the sink is closed.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: queue.Queue[object] = queue.Queue(maxsize=maxsize)

    def emit(self, chunk: str) -> None:
        self._queue.put(chunk)

    def close(self) -> None:
        self._queue.put(_CLOSED)

    def __iter__(self) -> Iterator[str]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            assert isinstance(item, str)
            yield item


class GuardedSink:
    """Wraps a caller's sink so ``close`` happens once and late emits are dropped."""

    def __init__(self, inner: StreamSink | None, *, run_id: str) -> None:
        self._inner = inner
        self._run_id = run_id
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, chunk: str) -> None:
        with self._lock:
            if self._inner is None:
                return
            if self._closed:
                logger.warning("Dropping chunk emitted after close", extra={"run_id": self._run_id})
                return
            self._inner.emit(chunk)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._inner is not None:
                self._inner.close()
