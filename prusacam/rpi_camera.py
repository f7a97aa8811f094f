"""Raspberry Pi camera driven through ``rpicam-still``."""

from __future__ import annotations

import logging
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Sequence

from prusacam.arbiter import CameraArbiter
from prusacam.config import DEFAULT_CAMERA_OPTIONS
from prusacam.errors import CaptureProcessFailure, ProcessFailure
from prusacam.frames import FRAME_PATTERN, find_last_frame
from prusacam.processes import ProcessRunner
from prusacam.streaming import FrameStream


class RpiCamera:
    """Still and time-lapse capture through a single camera binary.

    Every capture goes through the arbiter: a snapshot never waits for the
    device, and while a time-lapse is running it is served from the
    time-lapse's own frames instead.
    """

    supports_timelapse = True

    def __init__(
        self,
        arbiter: CameraArbiter,
        runner: ProcessRunner,
        *,
        binary: str = "rpicam-still",
        options: Sequence[str] = DEFAULT_CAMERA_OPTIONS,
        still_timeout: float = 30.0,
        snapshot_dir: Optional[Path] = None,
        stream_interval: float = 2.0,
        stream_buffer: int = 10,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.arbiter = arbiter
        self.runner = runner
        self.binary = binary
        self.options = list(options)
        self.still_timeout = still_timeout
        self.snapshot_dir = snapshot_dir or Path(tempfile.mkdtemp(prefix="prusacam"))
        self.stream_interval = stream_interval
        self.stream_buffer = stream_buffer
        self.logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def still_command(self, output_path: Path) -> List[str]:
        return [self.binary, *self.options, "--immediate", "-o", str(output_path)]

    def timelapse_command(self, working_dir: Path, interval_seconds: int) -> List[str]:
        return [
            self.binary,
            *self.options,
            "--timelapse",
            str(interval_seconds * 1000),
            # Runs until it is stopped.
            "--timeout",
            "0",
            "-o",
            str(working_dir / FRAME_PATTERN),
        ]

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def capture_still(self, output_path: Path) -> Path:
        """Run a single still capture; the caller must hold the device."""
        cmd = self.still_command(output_path)
        self.logger.debug("Still capture args: %s", cmd)
        try:
            output = self.runner.run(cmd, timeout=self.still_timeout)
        except ProcessFailure as exc:
            self.logger.debug("Still capture output: %s", exc.output)
            raise CaptureProcessFailure(f"still capture failed: {exc}") from exc
        self.logger.debug("Still capture output: %s", output)
        return output_path

    def take_shot(self) -> Path:
        """Capture a one-off frame, failing with `DeviceBusy` if the device is held."""
        output_path = self.snapshot_dir / f"{time.time_ns() // 1000}.jpg"
        with self.arbiter.exclusive_device(blocking=False):
            return self.capture_still(output_path)

    def snapshot(self) -> bytes:
        session = self.arbiter.running_session()
        if session is None:
            path = self.take_shot()
        else:
            path = find_last_frame(session.working_dir)
            if path is None:
                raise CaptureProcessFailure("time-lapse has not written any frames yet")

        try:
            return path.read_bytes()
        except OSError as exc:
            raise CaptureProcessFailure(f"failed to read frame {path}: {exc}") from exc

    def stream(self) -> FrameStream:
        return FrameStream(
            self.snapshot,
            interval=self.stream_interval,
            maxsize=self.stream_buffer,
            logger=self.logger,
        ).start()

    def close(self) -> None:
        """Nothing to release; frames are left to OS temp cleanup."""


__all__ = ["RpiCamera"]
