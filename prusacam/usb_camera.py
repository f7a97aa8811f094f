"""USB video device read continuously through OpenCV."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

import cv2
import numpy as np

from prusacam.arbiter import CameraArbiter
from prusacam.errors import CaptureProcessFailure, DeviceBusy
from prusacam.streaming import FrameStream


class UsbCamera:
    """Keep the latest frame of a USB camera in memory.

    The camera holds the arbiter's device lock from `open` until `close`, so
    no still capture can run against the same hardware meanwhile. Time-lapse
    capture is not supported on this backend.
    """

    supports_timelapse = False

    def __init__(
        self,
        arbiter: CameraArbiter,
        *,
        device: int = 0,
        width: Optional[int] = None,
        height: Optional[int] = None,
        jpeg_quality: int = 80,
        stream_interval: float = 2.0,
        stream_buffer: int = 10,
        capture_factory: Callable[[int], Any] = cv2.VideoCapture,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.arbiter = arbiter
        self.device = device
        self.width = width
        self.height = height
        self.jpeg_params = [int(cv2.IMWRITE_JPEG_QUALITY), jpeg_quality]
        self.stream_interval = stream_interval
        self.stream_buffer = stream_buffer
        self.logger = logger or logging.getLogger(__name__)
        self._capture_factory = capture_factory
        self._capture: Any = None
        self._frame: Optional[np.ndarray] = None
        self._frame_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def open(self) -> "UsbCamera":
        if not self.arbiter.try_acquire():
            raise DeviceBusy("capture device is busy")

        capture = self._capture_factory(self.device)
        if not capture.isOpened():
            self.arbiter.release()
            raise CaptureProcessFailure(f"failed to open video device {self.device}")

        if self.width and self.height:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self.logger.info(
            "Opened video device %s at %sx%s",
            self.device,
            int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )

        self._capture = capture
        self._thread = threading.Thread(target=self._read_frames, daemon=True, name="usb-camera")
        self._thread.start()
        return self

    def _read_frames(self) -> None:
        while not self._stop.is_set():
            ok, frame = self._capture.read()
            if not ok:
                self.logger.warning("Failed to read frame from video device %s", self.device)
                self._stop.wait(1.0)
                continue
            with self._frame_lock:
                self._frame = frame

    def set_frame(self, frame: np.ndarray) -> None:
        with self._frame_lock:
            self._frame = frame

    def snapshot(self) -> bytes:
        with self._frame_lock:
            frame = self._frame
        if frame is None:
            raise CaptureProcessFailure("frame not yet available")

        ok, buffer = cv2.imencode(".jpg", frame, self.jpeg_params)
        if not ok:
            raise CaptureProcessFailure("failed to encode frame as JPEG")
        return buffer.tobytes()

    def stream(self) -> FrameStream:
        return FrameStream(
            self.snapshot,
            interval=self.stream_interval,
            maxsize=self.stream_buffer,
            logger=self.logger,
        ).start()

    def close(self) -> None:
        if self._capture is None:
            return
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._capture.release()
        self._capture = None
        self.arbiter.release()


__all__ = ["UsbCamera"]
