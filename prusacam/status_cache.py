"""Short-lived cache in front of the printer status source."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from prusacam.errors import RemoteUnreachable
from prusacam.models import CachedStatus, PrinterStatus

DEFAULT_TTL = 10.0


class StatusCache:
    """Single-entry TTL cache for printer status.

    A timeout from the source is reported as ``PrinterStatus.offline()`` and
    cached like any other observation; other failures propagate and leave the
    cache untouched. Read and refresh are not atomic, so callers racing on a
    miss may each query the printer.
    """

    def __init__(
        self,
        fetch: Callable[[], PrinterStatus],
        *,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._fetch = fetch
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entry: Optional[CachedStatus] = None
        self.logger = logger or logging.getLogger(__name__)

    def _cached(self) -> Optional[PrinterStatus]:
        with self._lock:
            entry = self._entry
            if entry is None:
                return None
            if self._clock() - entry.observed_at < self.ttl:
                return entry.status
            self._entry = None
            return None

    def get(self) -> PrinterStatus:
        cached = self._cached()
        if cached is not None:
            self.logger.debug("Returning printer status from cache")
            return cached

        try:
            status = self._fetch()
        except RemoteUnreachable as exc:
            self.logger.debug("Printer unreachable: %s", exc)
            status = PrinterStatus.offline()

        with self._lock:
            self._entry = CachedStatus(status=status, observed_at=self._clock())
        return status

    def flush(self) -> None:
        with self._lock:
            self._entry = None


__all__ = ["DEFAULT_TTL", "StatusCache"]
