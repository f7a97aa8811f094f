"""External process runner used by the capture backends and the encoder."""

from __future__ import annotations

import logging
import subprocess
import tempfile
import threading
from typing import IO, Optional, Sequence

from prusacam.errors import ProcessFailure

LOGGER = logging.getLogger(__name__)


class RunningProcess:
    """Handle on a long-running process whose combined output goes to a temp file."""

    def __init__(
        self,
        process: subprocess.Popen,
        cmd: Sequence[str],
        output_file: IO[bytes],
        *,
        terminate_timeout: float = 5.0,
    ) -> None:
        self._process = process
        self._output_file = output_file
        self._terminate_timeout = terminate_timeout
        self._lock = threading.Lock()
        self._output: Optional[str] = None
        self.cmd = list(cmd)

    @property
    def pid(self) -> int:
        return self._process.pid

    def poll(self) -> Optional[int]:
        return self._process.poll()

    def cancel(self) -> None:
        """Ask the process to stop, killing it if it does not exit in time."""
        if self._process.poll() is not None:
            return
        self._process.terminate()
        try:
            self._process.wait(timeout=self._terminate_timeout)
        except subprocess.TimeoutExpired:
            LOGGER.warning("Process %s ignored SIGTERM, killing it", self._process.pid)
            self._process.kill()

    def wait(self, timeout: Optional[float] = None) -> int:
        return self._process.wait(timeout=timeout)

    def output(self) -> str:
        """Return the combined output once the process has exited."""
        with self._lock:
            if self._output is not None:
                return self._output
            if self._process.poll() is None:
                return ""
            try:
                self._output_file.seek(0)
                self._output = self._output_file.read().decode("utf-8", errors="replace")
            finally:
                self._output_file.close()
            return self._output


class ProcessRunner:
    """Start external binaries, either to completion or in the background."""

    def run(self, cmd: Sequence[str], *, timeout: Optional[float] = None) -> str:
        """Run ``cmd`` to completion and return its combined output.

        Raises `ProcessFailure` when the binary cannot be executed, times out
        or exits with a non-zero status.
        """
        try:
            result = subprocess.run(
                list(cmd),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ProcessFailure(f"{cmd[0]} not found", cmd=cmd) from exc
        except OSError as exc:
            raise ProcessFailure(f"failed to run {cmd[0]}: {exc}", cmd=cmd) from exc
        except subprocess.TimeoutExpired as exc:
            output = (exc.output or b"").decode("utf-8", errors="replace")
            raise ProcessFailure(
                f"{cmd[0]} timed out after {timeout}s",
                cmd=cmd,
                output=output,
            ) from exc

        output = (result.stdout or b"").decode("utf-8", errors="replace")
        if result.returncode != 0:
            raise ProcessFailure(
                f"{cmd[0]} exited with status {result.returncode}",
                cmd=cmd,
                returncode=result.returncode,
                output=output,
            )
        return output

    def start(self, cmd: Sequence[str]) -> RunningProcess:
        """Start ``cmd`` without waiting for it to finish."""
        output_file = tempfile.TemporaryFile()
        try:
            process = subprocess.Popen(
                list(cmd),
                stdin=subprocess.DEVNULL,
                stdout=output_file,
                stderr=subprocess.STDOUT,
            )
        except OSError as exc:
            output_file.close()
            raise ProcessFailure(f"failed to start {cmd[0]}: {exc}", cmd=cmd) from exc
        return RunningProcess(process, cmd, output_file)


__all__ = ["ProcessRunner", "RunningProcess"]
