import sys
import threading
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from prusacam.arbiter import CameraArbiter  # noqa: E402
from prusacam.errors import ProcessFailure, RemoteError  # noqa: E402
from prusacam.frames import frame_path  # noqa: E402
from prusacam.models import PrinterState, PrinterStatus  # noqa: E402
from prusacam.timelapse import TimelapseController, TimelapseState  # noqa: E402


def _status(state, progress=5.0, job_id=17, online=True):
    return PrinterStatus(
        online=online,
        job_id=job_id,
        file_name="bracket.gcode",
        state=state,
        progress=progress,
    )


IDLE = _status(PrinterState.IDLE, progress=0.0, job_id=0)
PRINTING = _status(PrinterState.PRINTING)
FINISHED = _status(PrinterState.FINISHED, progress=100.0)


class StatusSequence:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class FakeProcess:
    def __init__(self):
        self.cancelled = False
        self.waited = False

    def cancel(self):
        self.cancelled = True

    def wait(self, timeout=None):
        self.waited = True
        return 0

    def output(self):
        return "capture log"


class FakeRunner:
    def __init__(self, frames_per_start=3, fail=False):
        self.frames_per_start = frames_per_start
        self.fail = fail
        self.started = []
        self.processes = []

    def start(self, cmd):
        self.started.append(cmd)
        if self.fail:
            raise ProcessFailure("rpicam-still not found", cmd=cmd)
        # The last argument is the frame pattern inside the working dir.
        working_dir = Path(cmd[-1]).parent
        for sequence in range(self.frames_per_start):
            frame_path(working_dir, sequence).write_bytes(b"jpeg")
        process = FakeProcess()
        self.processes.append(process)
        return process


class FakeCamera:
    def timelapse_command(self, working_dir, interval_seconds):
        return ["rpicam-still", "--timelapse", str(interval_seconds * 1000), str(working_dir / "image%06d.jpg")]


class FakePipeline:
    def __init__(self):
        self.calls = []

    def finalize(self, session, frame_count):
        self.calls.append((session, frame_count))
        return None


def _controller(tmp_path, status, runner=None, pipeline=None, arbiter=None, stop_event=None):
    return TimelapseController(
        status,
        arbiter or CameraArbiter(),
        FakeCamera(),
        runner or FakeRunner(),
        pipeline or FakePipeline(),
        interval=20,
        progress_poll_interval=0,
        temp_root=tmp_path,
        stop_event=stop_event,
    )


def test_print_cycle_produces_exactly_one_video(tmp_path):
    status = StatusSequence(IDLE, PRINTING, PRINTING, FINISHED)
    runner = FakeRunner(frames_per_start=4)
    pipeline = FakePipeline()
    controller = _controller(tmp_path, status, runner=runner, pipeline=pipeline)

    controller.tick()
    assert controller.session is None
    assert controller.state is TimelapseState.IDLE

    controller.tick()
    assert controller.state is TimelapseState.RUNNING
    assert controller.is_running()
    assert controller.arbiter.device_busy

    controller.tick()
    assert len(runner.started) == 1

    controller.tick()
    controller.wait_for_pipelines(timeout=5)

    assert controller.session is None
    assert controller.state is TimelapseState.IDLE
    assert not controller.arbiter.device_busy
    assert runner.processes[0].cancelled
    assert runner.processes[0].waited
    assert len(pipeline.calls) == 1
    session, frame_count = pipeline.calls[0]
    assert session.job_id == 17
    assert session.job_name == "bracket.gcode"
    assert frame_count == 4


def test_capture_command_uses_interval_and_temp_dir(tmp_path):
    runner = FakeRunner()
    controller = _controller(tmp_path, StatusSequence(PRINTING), runner=runner)

    controller.tick()

    cmd = runner.started[0]
    assert "20000" in cmd
    working_dir = controller.session.working_dir
    assert working_dir.parent == tmp_path
    assert working_dir.name.startswith("timelapse17")


def test_stop_state_while_idle_is_a_noop(tmp_path):
    runner = FakeRunner()
    pipeline = FakePipeline()
    controller = _controller(tmp_path, StatusSequence(FINISHED), runner=runner, pipeline=pipeline)

    controller.tick()

    assert controller.session is None
    assert runner.started == []
    assert pipeline.calls == []


def test_offline_printer_while_idle_is_a_noop(tmp_path):
    runner = FakeRunner()
    controller = _controller(tmp_path, StatusSequence(PrinterStatus.offline()), runner=runner)

    controller.tick()

    assert controller.session is None
    assert runner.started == []


def test_poll_error_leaves_state_unchanged(tmp_path):
    status = StatusSequence(PRINTING, RemoteError("500"), FINISHED)
    pipeline = FakePipeline()
    controller = _controller(tmp_path, status, pipeline=pipeline)

    controller.tick()
    controller.tick()
    assert controller.state is TimelapseState.RUNNING

    controller.tick()
    controller.wait_for_pipelines(timeout=5)
    assert len(pipeline.calls) == 1


def test_pause_and_offline_keep_the_session_running(tmp_path):
    paused = _status(PrinterState.PAUSED)
    status = StatusSequence(PRINTING, paused, PrinterStatus.offline(), PRINTING)
    runner = FakeRunner()
    controller = _controller(tmp_path, status, runner=runner)

    for _ in range(4):
        controller.tick()

    assert controller.is_running()
    assert len(runner.started) == 1


def test_start_waits_for_progress_before_capturing(tmp_path):
    preheat = _status(PrinterState.PRINTING, progress=0.0)
    status = StatusSequence(preheat, preheat, PRINTING)
    runner = FakeRunner()
    controller = _controller(tmp_path, status, runner=runner)

    controller.tick()

    assert status.calls == 3
    assert controller.is_running()
    assert len(runner.started) == 1


def test_job_ending_before_progress_abandons_the_start(tmp_path):
    preheat = _status(PrinterState.PRINTING, progress=0.0)
    stopped = _status(PrinterState.STOPPED, progress=0.0)
    runner = FakeRunner()
    controller = _controller(tmp_path, StatusSequence(preheat, stopped), runner=runner)

    controller.tick()

    assert controller.session is None
    assert controller.state is TimelapseState.IDLE
    assert runner.started == []
    assert not controller.arbiter.device_busy


def test_shutdown_during_progress_wait_aborts_the_start(tmp_path):
    stop_event = threading.Event()
    preheat = _status(PrinterState.PRINTING, progress=0.0)

    def status():
        stop_event.set()
        return preheat

    runner = FakeRunner()
    controller = _controller(tmp_path, status, runner=runner, stop_event=stop_event)

    controller._start(preheat)

    assert controller.session is None
    assert runner.started == []
    assert not controller.arbiter.device_busy


def test_snapshot_session_visible_only_once_running(tmp_path):
    preheat = _status(PrinterState.PRINTING, progress=0.0)
    seen = []
    controller = None

    def status():
        seen.append((controller.session, controller.is_running(), controller.state))
        return PRINTING

    controller = _controller(tmp_path, status)
    controller._start(preheat)

    session, running, state = seen[0]
    assert session is not None
    assert running is False
    assert state is TimelapseState.STARTING
    assert controller.is_running()


def test_capture_start_failure_releases_the_device(tmp_path):
    runner = FakeRunner(fail=True)
    controller = _controller(tmp_path, StatusSequence(PRINTING), runner=runner)

    controller.tick()

    assert controller.session is None
    assert controller.state is TimelapseState.IDLE
    assert not controller.arbiter.device_busy
    assert list(tmp_path.iterdir()) == []


def test_shutdown_stops_capture_and_keeps_frames(tmp_path):
    runner = FakeRunner(frames_per_start=2)
    pipeline = FakePipeline()
    controller = _controller(tmp_path, StatusSequence(PRINTING), runner=runner, pipeline=pipeline)

    controller.tick()
    working_dir = controller.session.working_dir
    controller.shutdown()
    controller.tick()

    assert runner.processes[0].cancelled
    assert controller.session is None
    assert not controller.arbiter.device_busy
    assert pipeline.calls == []
    assert len(list(working_dir.glob("*.jpg"))) == 2
    assert len(runner.started) == 1


def test_new_print_after_finish_starts_a_new_session(tmp_path):
    second = _status(PrinterState.PRINTING, job_id=18)
    status = StatusSequence(PRINTING, FINISHED, second)
    runner = FakeRunner()
    pipeline = FakePipeline()
    controller = _controller(tmp_path, status, runner=runner, pipeline=pipeline)

    controller.tick()
    controller.tick()
    controller.tick()
    controller.wait_for_pipelines(timeout=5)

    assert controller.session.job_id == 18
    assert len(runner.started) == 2
    assert len(pipeline.calls) == 1
