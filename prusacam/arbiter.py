"""Exclusive access to the capture device and the active time-lapse session."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from prusacam.errors import DeviceBusy
from prusacam.models import TimelapseSession


class CameraArbiter:
    """Own the single capture device and the pointer to the current session.

    The device lock is a plain `threading.Lock` so that a time-lapse can take
    it on one scheduler thread and give it back from another.
    """

    def __init__(self) -> None:
        self._device_lock = threading.Lock()
        self._session_lock = threading.Lock()
        self._session: Optional[TimelapseSession] = None

    # ------------------------------------------------------------------
    # Device
    # ------------------------------------------------------------------

    def try_acquire(self) -> bool:
        return self._device_lock.acquire(blocking=False)

    def acquire(self, timeout: Optional[float] = None) -> bool:
        if timeout is None:
            return self._device_lock.acquire()
        return self._device_lock.acquire(timeout=timeout)

    def release(self) -> None:
        self._device_lock.release()

    @property
    def device_busy(self) -> bool:
        return self._device_lock.locked()

    @contextmanager
    def exclusive_device(self, *, blocking: bool = True) -> Iterator[None]:
        """Hold the device for the duration of the block.

        With ``blocking=False`` a held device raises `DeviceBusy` instead of
        waiting.
        """
        acquired = self.acquire() if blocking else self.try_acquire()
        if not acquired:
            raise DeviceBusy("capture device is busy")
        try:
            yield
        finally:
            self.release()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[TimelapseSession]:
        with self._session_lock:
            return self._session

    def set_session(self, session: Optional[TimelapseSession]) -> None:
        with self._session_lock:
            self._session = session

    def clear_session(self) -> Optional[TimelapseSession]:
        with self._session_lock:
            session, self._session = self._session, None
            return session

    def running_session(self) -> Optional[TimelapseSession]:
        """Return the session only while its capture process is active."""
        with self._session_lock:
            session = self._session
        if session is not None and session.is_running:
            return session
        return None


__all__ = ["CameraArbiter"]
