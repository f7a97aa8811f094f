"""Time-lapse state machine driven by printer job status."""

from __future__ import annotations

import enum
import logging
import shutil
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from prusacam.arbiter import CameraArbiter
from prusacam.errors import ProcessFailure, RemoteError
from prusacam.frames import count_frames
from prusacam.models import PrinterState, PrinterStatus, TimelapseSession, job_name
from prusacam.processes import ProcessRunner

START_STATES = frozenset({PrinterState.PRINTING, PrinterState.ATTENTION})
CONTINUE_STATES = START_STATES | {PrinterState.PAUSED, PrinterState.BUSY}
STOP_STATES = frozenset({
    PrinterState.IDLE,
    PrinterState.ERROR,
    PrinterState.FINISHED,
    PrinterState.STOPPED,
    PrinterState.READY,
})


def should_start(state: Optional[PrinterState]) -> bool:
    return state in START_STATES


def should_continue(state: Optional[PrinterState]) -> bool:
    return state in CONTINUE_STATES


def should_stop(state: Optional[PrinterState]) -> bool:
    return state in STOP_STATES


class TimelapseState(str, enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    FINISHING = "finishing"


class TimelapseCamera(Protocol):
    def timelapse_command(self, working_dir: Path, interval_seconds: int) -> List[str]:
        ...


class Finalizer(Protocol):
    def finalize(self, session: TimelapseSession, frame_count: int) -> Optional[Path]:
        ...


class TimelapseController:
    """Start and stop time-lapse captures as prints begin and end.

    `tick` is called once per poll interval. Transitions are serialized by an
    internal lock; the session itself is published through the arbiter so the
    snapshot path can read it without waiting on a transition.
    """

    def __init__(
        self,
        status: Callable[[], PrinterStatus],
        arbiter: CameraArbiter,
        camera: TimelapseCamera,
        runner: ProcessRunner,
        pipeline: Finalizer,
        *,
        interval: int = 20,
        progress_poll_interval: float = 15.0,
        temp_root: Optional[Path] = None,
        stop_event: Optional[threading.Event] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._status = status
        self.arbiter = arbiter
        self.camera = camera
        self.runner = runner
        self.pipeline = pipeline
        self.interval = interval
        self.progress_poll_interval = progress_poll_interval
        self.temp_root = temp_root
        self.stop_event = stop_event or threading.Event()
        self.logger = logger or logging.getLogger(__name__)

        self.state = TimelapseState.IDLE
        self._transition_lock = threading.Lock()
        self._pipeline_threads: List[threading.Thread] = []

    @property
    def session(self) -> Optional[TimelapseSession]:
        return self.arbiter.session

    def is_running(self) -> bool:
        return self.arbiter.running_session() is not None

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def _poll(self) -> Optional[PrinterStatus]:
        try:
            return self._status()
        except RemoteError as exc:
            self.logger.warning("Failed to get current job status: %s", exc)
            return None

    def tick(self) -> None:
        """Observe the printer once and apply at most one transition."""
        if self.stop_event.is_set():
            return
        status = self._poll()
        if status is None:
            return

        with self._transition_lock:
            if self.arbiter.session is None:
                if not status.online:
                    self.logger.debug("Printer is offline")
                    return
                if should_start(status.state):
                    self._start(status)
                else:
                    self.logger.debug("Time-lapse idle")
                return

            if should_stop(status.state):
                self._finish()
                return

            self.logger.debug("Time-lapse continues (%s, %.1f%%)", status.state, status.progress)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _wait_for_progress(self, status: PrinterStatus) -> Optional[PrinterStatus]:
        """Poll until the job reports progress, skipping calibration and pre-heat.

        Returns ``None`` when shutdown is requested or the job ends first.
        """
        while status.progress <= 0:
            if self.stop_event.wait(self.progress_poll_interval):
                self.logger.warning("Shutdown requested while waiting for job progress")
                return None
            try:
                status = self._status()
            except RemoteError as exc:
                self.logger.warning("Failed to get job status while waiting for progress: %s", exc)
                status = PrinterStatus.offline()
                continue
            if should_stop(status.state):
                self.logger.info("Job ended (%s) before making progress", status.state.value)
                return None
        return status

    def _start(self, status: PrinterStatus) -> None:
        session = TimelapseSession(
            job_id=status.job_id,
            job_name=job_name(status),
            started_at=datetime.now(),
        )
        self.state = TimelapseState.STARTING
        self.arbiter.set_session(session)
        self.logger.info("Time-lapse start initiated for job %s (%s), waiting for progress", session.job_id, session.job_name)

        ready = self._wait_for_progress(status)
        if ready is None:
            self._reset()
            return

        self.arbiter.acquire()
        try:
            working_dir = Path(tempfile.mkdtemp(prefix=f"timelapse{session.job_id}", dir=self.temp_root))
        except OSError as exc:
            self.arbiter.release()
            self.logger.error("Failed to create time-lapse directory: %s", exc)
            self._reset()
            return

        cmd = self.camera.timelapse_command(working_dir, self.interval)
        self.logger.debug("Time-lapse capture args: %s", cmd)
        try:
            process = self.runner.start(cmd)
        except ProcessFailure as exc:
            self.arbiter.release()
            self.logger.error("Time-lapse capture failed to start: %s", exc)
            shutil.rmtree(working_dir, ignore_errors=True)
            self._reset()
            return

        session.started_at = datetime.now()
        session.working_dir = working_dir
        session.process = process
        self.state = TimelapseState.RUNNING
        self.logger.info("Progress noted, time-lapse started for job %s in %s", session.job_id, working_dir)

    def _stop_capture(self, session: TimelapseSession) -> None:
        """Stop the capture process, wait for it to exit and free the device."""
        process = session.process
        if process is None:
            return
        try:
            process.cancel()
            process.wait()
            self.logger.debug("Time-lapse capture output: %s", process.output())
        finally:
            self.arbiter.release()

    def _finish(self) -> None:
        session = self.arbiter.session
        if session is None:
            return
        self.state = TimelapseState.FINISHING
        self.logger.info(
            "Finishing time-lapse for job %s (%s), print took %s",
            session.job_id,
            session.job_name,
            datetime.now() - session.started_at,
        )

        try:
            self._stop_capture(session)
            if session.working_dir is not None:
                self._dispatch_pipeline(session, count_frames(session.working_dir))
        finally:
            self._reset()
        self.logger.info("Time-lapse finished for job %s (%s)", session.job_id, session.job_name)

    def _reset(self) -> None:
        self.arbiter.clear_session()
        self.state = TimelapseState.IDLE

    def _dispatch_pipeline(self, session: TimelapseSession, frame_count: int) -> None:
        thread = threading.Thread(
            target=self._run_pipeline,
            args=(session, frame_count),
            daemon=True,
            name=f"timelapse-video-{session.job_id}",
        )
        self._pipeline_threads = [t for t in self._pipeline_threads if t.is_alive()]
        self._pipeline_threads.append(thread)
        thread.start()

    def _run_pipeline(self, session: TimelapseSession, frame_count: int) -> None:
        try:
            self.pipeline.finalize(session, frame_count)
        except Exception:
            self.logger.exception("Post-capture pipeline crashed for job %s", session.job_id)

    def wait_for_pipelines(self, timeout: Optional[float] = None) -> None:
        for thread in list(self._pipeline_threads):
            thread.join(timeout)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        """Abort a pending start and stop a running capture.

        Frames of an interrupted session stay on disk; no video is built.
        """
        self.stop_event.set()
        with self._transition_lock:
            session = self.arbiter.session
            if session is None:
                return
            self._stop_capture(session)
            self._reset()
            if session.working_dir is not None:
                self.logger.warning("Time-lapse for job %s interrupted, frames kept in %s", session.job_id, session.working_dir)


__all__ = [
    "CONTINUE_STATES",
    "START_STATES",
    "STOP_STATES",
    "TimelapseController",
    "TimelapseState",
    "should_continue",
    "should_start",
    "should_stop",
]
