"""PrusaLink job-status client."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import requests
from requests.auth import HTTPDigestAuth

from prusacam.errors import RemoteError, RemoteUnreachable
from prusacam.models import PrinterState, PrinterStatus

JOB_ENDPOINT = "/api/v1/job"


def _build_session(username: str, api_key: str) -> requests.Session:
    session = requests.Session()
    session.auth = HTTPDigestAuth(username, api_key)
    session.headers.update({"Accept": "application/json"})
    return session


def parse_job_response(payload: Any) -> PrinterStatus:
    """Map a PrusaLink ``/api/v1/job`` body onto a `PrinterStatus`."""
    if not isinstance(payload, Mapping):
        raise RemoteError("Unexpected job payload")

    file_info = payload.get("file")
    file_name = ""
    if isinstance(file_info, Mapping):
        file_name = str(file_info.get("display_name") or "")

    try:
        job_id = int(payload.get("id") or 0)
        progress = float(payload.get("progress") or 0.0)
    except (TypeError, ValueError) as exc:
        raise RemoteError(f"Malformed job payload: {exc}") from exc

    return PrinterStatus(
        online=True,
        job_id=job_id,
        file_name=file_name,
        state=PrinterState.parse(payload.get("state")),
        progress=max(0.0, min(100.0, progress)),
    )


class PrusaLinkClient:
    """Query the current print job from a PrusaLink-enabled printer."""

    def __init__(
        self,
        address: str,
        *,
        username: str = "maker",
        api_key: str = "",
        request_timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not address:
            raise ValueError("printer address is empty")
        base = address if "://" in address else f"http://{address}"
        self.url = f"{base.rstrip('/')}{JOB_ENDPOINT}"
        self.request_timeout = request_timeout
        self.logger = logger or logging.getLogger(__name__)
        self.session = session or _build_session(username, api_key)

    def job_status(self) -> PrinterStatus:
        """Fetch the job status.

        Raises `RemoteUnreachable` when the request times out and
        `RemoteError` for any other transport or protocol failure.
        """
        self.logger.debug("Job status request started")
        try:
            response = self.session.get(self.url, timeout=self.request_timeout)
        except requests.Timeout as exc:
            raise RemoteUnreachable(f"printer did not answer within {self.request_timeout}s") from exc
        except requests.RequestException as exc:
            raise RemoteError(f"job status request failed: {exc}") from exc

        self.logger.debug("Job status response %s: %s", response.status_code, response.text)

        if response.status_code == 200:
            try:
                payload = response.json()
            except ValueError as exc:
                raise RemoteError("Failed to parse job status response as JSON") from exc
            return parse_job_response(payload)
        if response.status_code == 204:
            # Nothing in progress.
            return PrinterStatus(online=True, state=PrinterState.FINISHED)
        raise RemoteError(f"job status request returned {response.status_code}")


__all__ = ["JOB_ENDPOINT", "PrusaLinkClient", "parse_job_response"]
