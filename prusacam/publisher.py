"""Periodic snapshot upload to PrusaConnect."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import requests

from prusacam.config import PRUSA_CONNECT_SNAPSHOT_ENDPOINT
from prusacam.errors import PrusaCamError, RemoteError
from prusacam.models import PrinterStatus


class SnapshotPublisher:
    """PUT the current camera frame to PrusaConnect while the printer is online."""

    def __init__(
        self,
        snapshot: Callable[[], bytes],
        status: Callable[[], PrinterStatus],
        *,
        token: str,
        fingerprint: str,
        endpoint: str = PRUSA_CONNECT_SNAPSHOT_ENDPOINT,
        request_timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._snapshot = snapshot
        self._status = status
        self.endpoint = endpoint
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Token": token,
            "Fingerprint": fingerprint,
        })
        self.logger = logger or logging.getLogger(__name__)

    def send_snapshot(self) -> None:
        """Capture a frame and upload it; raises `PrusaCamError` on failure."""
        frame = self._snapshot()
        try:
            response = self.session.put(
                self.endpoint,
                data=frame,
                headers={"Content-Type": "image/jpg"},
                timeout=self.request_timeout,
            )
        except requests.RequestException as exc:
            raise RemoteError(f"failed to send snapshot: {exc}") from exc

        body = "" if response.status_code == 204 else response.text
        self.logger.debug("PrusaConnect response %s: %s", response.status_code, body)

    def force_send(self) -> None:
        self.send_snapshot()

    def publish(self) -> None:
        """Scheduled job: publish unless the printer is offline or unreachable."""
        try:
            status = self._status()
        except PrusaCamError as exc:
            self.logger.error("Failed to get printer status: %s", exc)
            return
        if not status.online:
            self.logger.debug("Printer offline, not sending snapshot")
            return

        try:
            self.send_snapshot()
        except PrusaCamError as exc:
            self.logger.error("Failed to send snapshot: %s", exc)
            return
        self.logger.debug("Snapshot sent")


__all__ = ["SnapshotPublisher"]
