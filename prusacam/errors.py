"""Exception types shared across the camera service."""

from __future__ import annotations

from typing import Optional, Sequence


class PrusaCamError(RuntimeError):
    """Base class for failures raised by the camera service."""


class RemoteUnreachable(PrusaCamError):
    """The printer did not answer within the request timeout."""


class RemoteError(PrusaCamError):
    """The printer answered with a transport or protocol failure."""


class DeviceBusy(PrusaCamError):
    """The capture device is held by another capture."""


class ProcessFailure(PrusaCamError):
    """An external process could not be started or exited unsuccessfully."""

    def __init__(
        self,
        message: str,
        *,
        cmd: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd) if cmd is not None else None
        self.returncode = returncode
        self.output = output


class CaptureProcessFailure(PrusaCamError):
    """The capture backend failed to produce a frame."""


class PipelineStepFailure(PrusaCamError):
    """A post-capture step (frame duplication or encoding) failed."""


__all__ = [
    "CaptureProcessFailure",
    "DeviceBusy",
    "PipelineStepFailure",
    "ProcessFailure",
    "PrusaCamError",
    "RemoteError",
    "RemoteUnreachable",
]
