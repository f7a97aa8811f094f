"""Bounded frame channel feeding live stream consumers."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Iterator, Optional

from prusacam.errors import PrusaCamError


class FrameStream:
    """Poll a frame source on an interval and queue the results.

    The queue is bounded; when a consumer falls behind, new frames are
    dropped rather than blocking the producer. Iterating yields frames until
    `stop` is called and the queue has drained.
    """

    def __init__(
        self,
        source: Callable[[], bytes],
        *,
        interval: float = 2.0,
        maxsize: int = 10,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._source = source
        self.interval = interval
        self.logger = logger or logging.getLogger(__name__)
        self._queue: "queue.Queue[bytes]" = queue.Queue(maxsize=maxsize)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.dropped = 0

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def start(self) -> "FrameStream":
        if self._thread is None:
            self._thread = threading.Thread(target=self._produce, daemon=True, name="frame-stream")
            self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()

    def offer(self, frame: bytes) -> bool:
        """Queue ``frame`` unless the buffer is full."""
        try:
            self._queue.put_nowait(frame)
        except queue.Full:
            self.dropped += 1
            self.logger.warning("Stream buffer overflow, dropping frame")
            return False
        return True

    def _produce(self) -> None:
        while not self._stop.is_set():
            try:
                self.offer(self._source())
            except PrusaCamError as exc:
                self.logger.warning("Failed to capture stream frame: %s", exc)
            self._stop.wait(self.interval)

    def __iter__(self) -> Iterator[bytes]:
        while True:
            try:
                yield self._queue.get(timeout=0.5)
            except queue.Empty:
                if self._stop.is_set():
                    return


__all__ = ["FrameStream"]
