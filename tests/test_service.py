import dataclasses
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from prusacam.config import Config, PrinterSettings, PrusaConnectSettings, TimelapseSettings  # noqa: E402
from prusacam.errors import PrusaCamError  # noqa: E402
from prusacam.models import PrinterStatus  # noqa: E402
from prusacam.service import PrusaCam  # noqa: E402


class FakeScheduler:
    def __init__(self):
        self.jobs = []
        self.started = False
        self.shutdown_calls = []

    def add_job(self, func, **kwargs):
        self.jobs.append((func, kwargs))

    def get_jobs(self):
        return self.jobs

    def start(self):
        self.started = True

    def shutdown(self, wait=True):
        self.shutdown_calls.append(wait)


class FakeClient:
    def __init__(self):
        self.calls = 0

    def job_status(self):
        self.calls += 1
        return PrinterStatus.offline()


class FakeCamera:
    supports_timelapse = True

    def __init__(self):
        self.closed = False

    def snapshot(self):
        return b"jpeg"

    def stream(self):
        return iter([b"jpeg"])

    def timelapse_command(self, working_dir, interval_seconds):
        return ["rpicam-still"]

    def capture_still(self, path):
        return path

    def close(self):
        self.closed = True


def _config(tmp_path, timelapse=True, prusa_connect=True):
    return Config(
        printer=PrinterSettings(address="printer.local"),
        timelapse=TimelapseSettings(enabled=timelapse, output_dir=tmp_path / "videos"),
        prusa_connect=PrusaConnectSettings(enabled=prusa_connect, token="tok", fingerprint="fp"),
    )


def _service(config, camera=None):
    return PrusaCam(config, client=FakeClient(), camera=camera or FakeCamera(), scheduler=FakeScheduler())


def test_start_schedules_enabled_jobs(tmp_path):
    service = _service(_config(tmp_path))

    service.start()

    ids = [kwargs["id"] for _, kwargs in service.scheduler.jobs]
    assert ids == ["timelapse", "prusaconnect"]
    assert service.scheduler.started
    assert service.scheduler.jobs[0][0] == service.timelapse.tick
    assert service.scheduler.jobs[1][0] == service.publisher.publish


def test_disabled_features_schedule_nothing(tmp_path):
    service = _service(_config(tmp_path, timelapse=False, prusa_connect=False))

    service.start()

    assert service.timelapse is None
    assert service.publisher is None
    assert service.scheduler.jobs == []
    with pytest.raises(PrusaCamError):
        service.force_send()


def test_timelapse_disabled_for_backend_without_support(tmp_path):
    camera = FakeCamera()
    camera.supports_timelapse = False

    service = _service(_config(tmp_path), camera=camera)

    assert service.timelapse is None


def test_shared_status_cache_serves_both_consumers(tmp_path):
    service = _service(_config(tmp_path))

    service.status_cache.get()
    service.publisher.publish()

    assert service.client.calls == 1


def test_shutdown_stops_everything(tmp_path):
    service = _service(_config(tmp_path))
    service.start()

    service.shutdown()

    assert service.stop_event.is_set()
    assert service.scheduler.shutdown_calls == [False]
    assert service.camera.closed


def test_snapshot_delegates_to_camera(tmp_path):
    service = _service(dataclasses.replace(_config(tmp_path), prusa_connect=PrusaConnectSettings()))

    assert service.snapshot() == b"jpeg"
