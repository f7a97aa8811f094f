import sys
from pathlib import Path

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from prusacam.errors import DeviceBusy, RemoteError  # noqa: E402
from prusacam.models import PrinterState, PrinterStatus  # noqa: E402
from prusacam.publisher import SnapshotPublisher  # noqa: E402


class FakeResponse:
    def __init__(self, status_code=204, text=""):
        self.status_code = status_code
        self.text = text


class FakeSession:
    def __init__(self, error=None):
        self.headers = {}
        self.error = error
        self.puts = []

    def put(self, url, data=None, headers=None, timeout=None):
        self.puts.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return FakeResponse()


ONLINE = PrinterStatus(online=True, state=PrinterState.IDLE)


def _publisher(session, status=lambda: ONLINE, snapshot=lambda: b"jpeg"):
    return SnapshotPublisher(
        snapshot,
        status,
        token="tok",
        fingerprint="fp",
        endpoint="https://connect.example/c/snapshot",
        request_timeout=5.0,
        session=session,
    )


def test_publish_puts_snapshot_with_credentials():
    session = FakeSession()

    _publisher(session).publish()

    assert session.headers == {"Token": "tok", "Fingerprint": "fp"}
    assert session.puts == [{
        "url": "https://connect.example/c/snapshot",
        "data": b"jpeg",
        "headers": {"Content-Type": "image/jpg"},
        "timeout": 5.0,
    }]


def test_publish_skips_offline_printer():
    session = FakeSession()

    _publisher(session, status=PrinterStatus.offline).publish()

    assert session.puts == []


def test_publish_skips_when_status_unavailable():
    session = FakeSession()

    def status():
        raise RemoteError("500")

    _publisher(session, status=status).publish()

    assert session.puts == []


def test_publish_logs_capture_failure(caplog):
    session = FakeSession()

    def snapshot():
        raise DeviceBusy("capture device is busy")

    _publisher(session, snapshot=snapshot).publish()

    assert session.puts == []
    assert "Failed to send snapshot" in caplog.text


def test_force_send_ignores_printer_state_and_raises_on_upload_error():
    session = FakeSession(error=requests.ConnectionError("refused"))
    publisher = _publisher(session, status=PrinterStatus.offline)

    with pytest.raises(RemoteError):
        publisher.force_send()
    assert len(session.puts) == 1
