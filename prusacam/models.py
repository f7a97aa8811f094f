"""Data models used across the camera service."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from prusacam.processes import RunningProcess


class PrinterState(str, enum.Enum):
    """Job states reported by PrusaLink."""

    IDLE = "IDLE"
    BUSY = "BUSY"
    PRINTING = "PRINTING"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"
    STOPPED = "STOPPED"
    ERROR = "ERROR"
    ATTENTION = "ATTENTION"
    READY = "READY"

    @classmethod
    def parse(cls, value: object) -> Optional["PrinterState"]:
        """Return the matching state, or ``None`` for unknown values."""
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


@dataclass(frozen=True)
class PrinterStatus:
    """Snapshot of a single job-status observation."""

    online: bool
    job_id: int = 0
    file_name: str = ""
    state: Optional[PrinterState] = None
    progress: float = 0.0

    @classmethod
    def offline(cls) -> "PrinterStatus":
        return cls(online=False)


@dataclass(frozen=True)
class CachedStatus:
    """Status entry held by the status cache."""

    status: PrinterStatus
    observed_at: float


@dataclass
class TimelapseSession:
    """Mutable record of the time-lapse currently being captured."""

    job_id: int
    job_name: str
    started_at: datetime
    working_dir: Optional[Path] = None
    process: Optional["RunningProcess"] = field(default=None, repr=False)

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.working_dir is not None


def job_name(status: PrinterStatus) -> str:
    """Name a job after its file, falling back to the job id."""
    if status.file_name:
        return status.file_name
    return str(status.job_id)


__all__ = [
    "CachedStatus",
    "PrinterState",
    "PrinterStatus",
    "TimelapseSession",
    "job_name",
]
