"""Service facade wiring the printer client, camera, time-lapse and publisher."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from prusacam.arbiter import CameraArbiter
from prusacam.config import Config
from prusacam.errors import PrusaCamError
from prusacam.pipeline import PostCapturePipeline
from prusacam.printer_client import PrusaLinkClient
from prusacam.processes import ProcessRunner
from prusacam.publisher import SnapshotPublisher
from prusacam.rpi_camera import RpiCamera
from prusacam.status_cache import StatusCache
from prusacam.streaming import FrameStream
from prusacam.timelapse import TimelapseController
from prusacam.usb_camera import UsbCamera


class PrusaCam:
    """Own every long-lived component and the background jobs that drive them."""

    def __init__(
        self,
        config: Config,
        *,
        logger: Optional[logging.Logger] = None,
        runner: Optional[ProcessRunner] = None,
        client: Optional[PrusaLinkClient] = None,
        camera: Any = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        self.config = config
        self.logger = logger or logging.getLogger("prusacam")
        self.runner = runner or ProcessRunner()
        self.arbiter = CameraArbiter()
        self.stop_event = threading.Event()

        printer = config.printer
        self.client = client or PrusaLinkClient(
            printer.address,
            username=printer.username,
            api_key=printer.api_key,
            request_timeout=printer.request_timeout,
            logger=self.logger.getChild("prusalink"),
        )
        self.status_cache = StatusCache(
            self.client.job_status,
            ttl=printer.cache_ttl,
            logger=self.logger.getChild("status"),
        )

        self.camera = camera or self._build_camera()
        self.output_dir = Path(config.timelapse.output_dir).expanduser()
        self.timelapse = self._build_timelapse()
        self.publisher = self._build_publisher()
        self.scheduler = scheduler or BackgroundScheduler(daemon=True)
        self._started = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _build_camera(self) -> Any:
        settings = self.config.camera
        camera_logger = self.logger.getChild("camera")
        if settings.backend == "usb":
            return UsbCamera(
                self.arbiter,
                device=settings.usb_device,
                width=settings.usb_width,
                height=settings.usb_height,
                jpeg_quality=settings.jpeg_quality,
                stream_interval=settings.stream_interval,
                stream_buffer=settings.stream_buffer,
                logger=camera_logger,
            )
        return RpiCamera(
            self.arbiter,
            self.runner,
            binary=settings.binary,
            options=settings.options,
            still_timeout=settings.still_timeout,
            stream_interval=settings.stream_interval,
            stream_buffer=settings.stream_buffer,
            logger=camera_logger,
        )

    def _capture_hero_frame(self, path: Path) -> Path:
        with self.arbiter.exclusive_device(blocking=True):
            return self.camera.capture_still(path)

    def _build_timelapse(self) -> Optional[TimelapseController]:
        settings = self.config.timelapse
        if not settings.enabled:
            self.logger.info("Time-lapse disabled")
            return None
        if not getattr(self.camera, "supports_timelapse", False):
            self.logger.warning("Time-lapse is not supported by the %s camera backend", self.config.camera.backend)
            return None

        pipeline = PostCapturePipeline(
            self.runner,
            self.output_dir,
            video_length=settings.video_length,
            min_fps=settings.min_fps,
            encoder_binary=settings.encoder_binary,
            encoder_timeout=settings.encoder_timeout,
            video_size=settings.video_size,
            hero_capture=self._capture_hero_frame if settings.hero_frame else None,
            logger=self.logger.getChild("video"),
        )
        self.logger.info("Time-lapse enabled, videos go to %s", self.output_dir)
        return TimelapseController(
            self.status_cache.get,
            self.arbiter,
            self.camera,
            self.runner,
            pipeline,
            interval=settings.interval,
            progress_poll_interval=settings.progress_poll_interval,
            stop_event=self.stop_event,
            logger=self.logger.getChild("timelapse"),
        )

    def _build_publisher(self) -> Optional[SnapshotPublisher]:
        settings = self.config.prusa_connect
        if not settings.enabled:
            self.logger.info("PrusaConnect disabled")
            return None
        self.logger.info("PrusaConnect enabled")
        return SnapshotPublisher(
            self.snapshot,
            self.status_cache.get,
            token=settings.token,
            fingerprint=settings.fingerprint,
            endpoint=settings.endpoint,
            request_timeout=settings.request_timeout,
            logger=self.logger.getChild("prusaconnect"),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._started:
            return
        if isinstance(self.camera, UsbCamera):
            self.camera.open()

        now = datetime.now()
        if self.timelapse is not None:
            self.scheduler.add_job(
                self.timelapse.tick,
                trigger=IntervalTrigger(seconds=self.config.timelapse.poll_interval),
                id="timelapse",
                name="Time-lapse Poll",
                max_instances=1,
                coalesce=True,
                next_run_time=now,
            )
        if self.publisher is not None:
            self.scheduler.add_job(
                self.publisher.publish,
                trigger=IntervalTrigger(seconds=self.config.prusa_connect.send_interval),
                id="prusaconnect",
                name="PrusaConnect Snapshot",
                max_instances=1,
                coalesce=True,
                next_run_time=now + timedelta(seconds=1),
            )
        self.scheduler.start()
        self._started = True
        self.logger.info("Camera service started with %s background job(s)", len(self.scheduler.get_jobs()))

    def shutdown(self) -> None:
        self.stop_event.set()
        if self._started:
            self.scheduler.shutdown(wait=False)
            self._started = False
        if self.timelapse is not None:
            self.timelapse.shutdown()
        self.status_cache.flush()
        self.camera.close()
        self.logger.info("Camera service stopped")

    # ------------------------------------------------------------------
    # Request-scoped operations
    # ------------------------------------------------------------------

    def snapshot(self) -> bytes:
        return self.camera.snapshot()

    def stream(self) -> FrameStream:
        return self.camera.stream()

    def force_send(self) -> None:
        if self.publisher is None:
            raise PrusaCamError("PrusaConnect is disabled")
        self.publisher.force_send()


__all__ = ["PrusaCam"]
