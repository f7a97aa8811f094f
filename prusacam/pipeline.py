"""Post-capture pipeline: hold the final frame and encode the video."""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path
from time import perf_counter
from typing import Callable, List, Optional

from prusacam.errors import PipelineStepFailure, ProcessFailure, PrusaCamError
from prusacam.frames import (
    FRAME_GLOB,
    find_last_frame,
    frame_path,
    frame_sequence_number,
)
from prusacam.models import TimelapseSession
from prusacam.processes import ProcessRunner

# Share of the video spent holding on the final frame.
HOLD_DIVISOR = 10


def compute_fps(frame_count: int, video_length: int, min_fps: int) -> int:
    """Frame rate that fits ``frame_count`` frames into ``video_length`` seconds.

    Uses floor division and never goes below ``min_fps``.
    """
    if video_length <= 0:
        return min_fps
    return max(frame_count // video_length, min_fps)


def hold_frame_count(frame_count: int) -> int:
    return frame_count // HOLD_DIVISOR


def video_filename(job_name: str, job_id: int, timestamp: int) -> str:
    """``t<timestamp>-<job>-<id>.mp4``; the prefix keeps listings in capture order."""
    safe_name = job_name.replace("/", "_").replace("\\", "_")
    return f"t{timestamp}-{safe_name}-{job_id}.mp4"


class PostCapturePipeline:
    """Turn the frames of a finished session into a video."""

    def __init__(
        self,
        runner: ProcessRunner,
        output_dir: Path,
        *,
        video_length: int = 7,
        min_fps: int = 12,
        encoder_binary: str = "ffmpeg",
        encoder_timeout: float = 600.0,
        video_size: str = "768x720",
        hero_capture: Optional[Callable[[Path], Path]] = None,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.runner = runner
        self.output_dir = Path(output_dir).expanduser()
        self.video_length = video_length
        self.min_fps = min_fps
        self.encoder_binary = encoder_binary
        self.encoder_timeout = encoder_timeout
        self.video_size = video_size
        self.hero_capture = hero_capture
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def refresh_hero_frame(self, last_frame: Path) -> None:
        """Re-shoot the final frame so the held image shows the finished print."""
        if self.hero_capture is None:
            return
        try:
            self.hero_capture(last_frame)
        except PrusaCamError as exc:
            self.logger.warning("Failed to re-shoot final frame, keeping the captured one: %s", exc)

    def duplicate_final_frame(self, directory: Path, last_frame: Path, copies: int) -> List[Path]:
        """Copy ``last_frame`` under the next ``copies`` sequence numbers."""
        try:
            last_sequence = frame_sequence_number(last_frame)
        except ValueError as exc:
            raise PipelineStepFailure(str(exc)) from exc

        written: List[Path] = []
        for sequence in range(last_sequence + 1, last_sequence + copies + 1):
            target = frame_path(directory, sequence)
            try:
                shutil.copyfile(last_frame, target)
            except OSError as exc:
                raise PipelineStepFailure(f"failed to copy {last_frame} to {target}: {exc}") from exc
            written.append(target)
        return written

    def encoder_command(self, directory: Path, fps: int, output_path: Path) -> List[str]:
        return [
            self.encoder_binary,
            "-y",
            "-r",
            str(fps),
            "-f",
            "image2",
            "-pattern_type",
            "glob",
            "-i",
            str(directory / FRAME_GLOB),
            "-s",
            self.video_size,
            "-vcodec",
            "libx264",
            str(output_path),
        ]

    def encode(self, session: TimelapseSession, frame_count: int) -> Path:
        if session.working_dir is None:
            raise PipelineStepFailure("session has no working directory")

        fps = compute_fps(frame_count, self.video_length, self.min_fps)
        output_path = self.output_dir / video_filename(
            session.job_name,
            session.job_id,
            int(self._clock()),
        )
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PipelineStepFailure(f"failed to create {self.output_dir}: {exc}") from exc

        cmd = self.encoder_command(session.working_dir, fps, output_path)
        self.logger.debug("Encoder args: %s", cmd)
        self.logger.info(
            "Encoding %s frames at %s fps for job %s (%s)",
            frame_count,
            fps,
            session.job_id,
            session.job_name,
        )
        try:
            output = self.runner.run(cmd, timeout=self.encoder_timeout)
        except ProcessFailure as exc:
            raise PipelineStepFailure(f"encoding failed: {exc}\n{exc.output}") from exc
        self.logger.debug("Encoder output: %s", output)
        return output_path

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def finalize(self, session: TimelapseSession, frame_count: int) -> Optional[Path]:
        """Run all steps; failures are logged and frames stay on disk."""
        directory = session.working_dir
        if directory is None:
            self.logger.error("Session for job %s has no working directory", session.job_id)
            return None

        last_frame = find_last_frame(directory)
        if last_frame is None:
            self.logger.error("No time-lapse frames found in %s", directory)
            return None

        self.refresh_hero_frame(last_frame)
        try:
            copies = self.duplicate_final_frame(directory, last_frame, hold_frame_count(frame_count))
            self.logger.debug("Held final frame for %s extra frames", len(copies))
        except PipelineStepFailure as exc:
            self.logger.warning("Failed to hold final frame: %s", exc)

        started = perf_counter()
        try:
            output_path = self.encode(session, frame_count)
        except PipelineStepFailure as exc:
            self.logger.error("Video for job %s failed, frames kept in %s: %s", session.job_id, directory, exc)
            return None

        self.logger.info(
            "Video for job %s written to %s in %.1fs",
            session.job_id,
            output_path,
            perf_counter() - started,
        )
        return output_path


__all__ = [
    "HOLD_DIVISOR",
    "PostCapturePipeline",
    "compute_fps",
    "hold_frame_count",
    "video_filename",
]
