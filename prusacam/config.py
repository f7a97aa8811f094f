"""Configuration dataclasses and loading helpers for the camera service."""

from __future__ import annotations

import json
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

DEFAULT_CONFIG_FILE = "config.json"
PRUSA_CONNECT_SNAPSHOT_ENDPOINT = "https://connect.prusa3d.com/c/snapshot"
DEFAULT_CAMERA_OPTIONS: Tuple[str, ...] = ("--encoding", "jpg", "-n")


def _parse_bool(value: Any, default: bool) -> bool:
    """Parse truthy/falsy values from multiple input types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return value != 0
    return default


def _parse_positive_int(value: Any, default: int) -> int:
    """Parse a positive integer with fallback to default."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _parse_float(value: Any, default: float) -> float:
    """Parse a positive floating point number with fallback to default."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _parse_str(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _parse_options(value: Any, default: Tuple[str, ...]) -> Tuple[str, ...]:
    """Accept camera options either as a list or a shell-style string."""
    if isinstance(value, str):
        return tuple(shlex.split(value)) or default
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    return default


@dataclass(frozen=True)
class PrinterSettings:
    """Connection details for the PrusaLink API."""

    address: str = ""
    username: str = "maker"
    api_key: str = ""
    request_timeout: float = 10.0
    cache_ttl: float = 10.0


@dataclass(frozen=True)
class TimelapseSettings:
    """Settings driving time-lapse capture and video assembly."""

    enabled: bool = False
    interval: int = 20
    video_length: int = 7
    output_dir: Path = Path("~/timelapses/")
    min_fps: int = 12
    poll_interval: float = 60.0
    progress_poll_interval: float = 15.0
    encoder_binary: str = "ffmpeg"
    encoder_timeout: float = 600.0
    video_size: str = "768x720"
    hero_frame: bool = True


@dataclass(frozen=True)
class CameraSettings:
    """Capture backend selection and options."""

    backend: str = "rpicam"
    binary: str = "rpicam-still"
    options: Tuple[str, ...] = DEFAULT_CAMERA_OPTIONS
    still_timeout: float = 30.0
    usb_device: int = 0
    usb_width: Optional[int] = None
    usb_height: Optional[int] = None
    jpeg_quality: int = 80
    stream_interval: float = 2.0
    stream_buffer: int = 10


@dataclass(frozen=True)
class PrusaConnectSettings:
    """Credentials for publishing snapshots to PrusaConnect."""

    enabled: bool = False
    token: str = ""
    fingerprint: str = ""
    endpoint: str = PRUSA_CONNECT_SNAPSHOT_ENDPOINT
    send_interval: float = 30.0
    request_timeout: float = 5.0


@dataclass(frozen=True)
class Config:
    """Root configuration object for the camera service."""

    port: int = 8080
    log_level: str = "info"
    log_file: Optional[Path] = None
    printer: PrinterSettings = field(default_factory=PrinterSettings)
    timelapse: TimelapseSettings = field(default_factory=TimelapseSettings)
    camera: CameraSettings = field(default_factory=CameraSettings)
    prusa_connect: PrusaConnectSettings = field(default_factory=PrusaConnectSettings)


def _parse_printer(raw: Mapping[str, Any]) -> PrinterSettings:
    default = PrinterSettings()
    if not isinstance(raw, Mapping):
        return default
    return PrinterSettings(
        address=_parse_str(raw.get("address"), default.address),
        username=_parse_str(raw.get("username"), default.username),
        api_key=_parse_str(raw.get("apikey", raw.get("api_key")), default.api_key),
        request_timeout=_parse_float(raw.get("request_timeout"), default.request_timeout),
        cache_ttl=_parse_float(raw.get("cache_ttl"), default.cache_ttl),
    )


def _parse_timelapse(raw: Mapping[str, Any]) -> TimelapseSettings:
    default = TimelapseSettings()
    if not isinstance(raw, Mapping):
        return default
    # "videoLenght" is the legacy spelling still found in older config files.
    video_length = raw.get("video_length", raw.get("videoLength", raw.get("videoLenght")))
    return TimelapseSettings(
        enabled=_parse_bool(raw.get("enabled"), default.enabled),
        interval=_parse_positive_int(raw.get("interval"), default.interval),
        video_length=_parse_positive_int(video_length, default.video_length),
        output_dir=Path(_parse_str(raw.get("output_dir", raw.get("outputDir")), str(default.output_dir))),
        min_fps=_parse_positive_int(raw.get("min_fps", raw.get("minFPS")), default.min_fps),
        poll_interval=_parse_float(raw.get("poll_interval"), default.poll_interval),
        progress_poll_interval=_parse_float(
            raw.get("progress_poll_interval"),
            default.progress_poll_interval,
        ),
        encoder_binary=_parse_str(raw.get("encoder_binary"), default.encoder_binary),
        encoder_timeout=_parse_float(raw.get("encoder_timeout"), default.encoder_timeout),
        video_size=_parse_str(raw.get("video_size"), default.video_size),
        hero_frame=_parse_bool(raw.get("hero_frame"), default.hero_frame),
    )


def _parse_optional_int(value: Any) -> Optional[int]:
    parsed = _parse_positive_int(value, 0)
    return parsed or None


def _parse_camera(raw: Mapping[str, Any]) -> CameraSettings:
    default = CameraSettings()
    if not isinstance(raw, Mapping):
        return default
    device = raw.get("usb_device")
    try:
        usb_device = int(device) if device is not None else default.usb_device
    except (TypeError, ValueError):
        usb_device = default.usb_device
    backend = _parse_str(raw.get("backend"), default.backend).lower()
    if backend not in {"rpicam", "usb"}:
        backend = default.backend
    return CameraSettings(
        backend=backend,
        binary=_parse_str(raw.get("binary"), default.binary),
        options=_parse_options(raw.get("options"), default.options),
        still_timeout=_parse_float(raw.get("still_timeout"), default.still_timeout),
        usb_device=usb_device,
        usb_width=_parse_optional_int(raw.get("usb_width")),
        usb_height=_parse_optional_int(raw.get("usb_height")),
        jpeg_quality=max(1, min(100, _parse_positive_int(raw.get("jpeg_quality"), default.jpeg_quality))),
        stream_interval=_parse_float(raw.get("stream_interval"), default.stream_interval),
        stream_buffer=_parse_positive_int(raw.get("stream_buffer"), default.stream_buffer),
    )


def _parse_prusa_connect(raw: Mapping[str, Any]) -> PrusaConnectSettings:
    default = PrusaConnectSettings()
    if not isinstance(raw, Mapping):
        return default
    return PrusaConnectSettings(
        enabled=_parse_bool(raw.get("enabled"), default.enabled),
        token=_parse_str(raw.get("token", raw.get("cameraToken")), default.token),
        fingerprint=_parse_str(raw.get("fingerprint"), default.fingerprint),
        endpoint=_parse_str(raw.get("endpoint"), default.endpoint),
        send_interval=_parse_float(raw.get("send_interval"), default.send_interval),
        request_timeout=_parse_float(raw.get("request_timeout"), default.request_timeout),
    )


def _parse_config(data: Mapping[str, Any]) -> Config:
    default = Config()
    log_file = data.get("log_file")
    return Config(
        port=_parse_positive_int(data.get("port"), default.port),
        log_level=_parse_str(data.get("loglevel", data.get("log_level")), default.log_level),
        log_file=Path(log_file) if log_file else None,
        printer=_parse_printer(data.get("printer", {})),
        timelapse=_parse_timelapse(data.get("timelapse", {})),
        camera=_parse_camera(data.get("camera", {})),
        prusa_connect=_parse_prusa_connect(data.get("prusaConnect", data.get("prusa_connect", {}))),
    )


def _load_env_config(env: Mapping[str, str]) -> Config:
    """Fallback configuration derived from environment variables."""
    return _parse_config({
        "port": env.get("PORT"),
        "loglevel": env.get("LOG_LEVEL"),
        "log_file": env.get("LOG_FILE"),
        "printer": {
            "address": env.get("PRINTER_ADDRESS"),
            "username": env.get("PRINTER_USERNAME"),
            "apikey": env.get("PRINTER_APIKEY"),
        },
        "timelapse": {
            "enabled": env.get("TIMELAPSE_ENABLED"),
            "interval": env.get("TIMELAPSE_INTERVAL"),
            "video_length": env.get("TIMELAPSE_VIDEO_LENGTH"),
            "output_dir": env.get("TIMELAPSE_OUTPUT_DIR"),
            "min_fps": env.get("TIMELAPSE_MIN_FPS"),
            "encoder_binary": env.get("FFMPEG_BIN"),
        },
        "camera": {
            "backend": env.get("CAMERA_BACKEND"),
            "binary": env.get("CAMERA_BINARY"),
            "options": env.get("CAMERA_OPTIONS"),
            "usb_device": env.get("CAMERA_USB_DEVICE"),
        },
        "prusaConnect": {
            "enabled": env.get("PRUSA_CONNECT_ENABLED"),
            "token": env.get("PRUSA_CONNECT_TOKEN"),
            "fingerprint": env.get("PRUSA_CONNECT_FINGERPRINT"),
        },
    })


def load_config(config_path: Path | str, env: Mapping[str, str] | None = None) -> Config:
    """Load configuration from JSON file or environment defaults."""
    source_env = env if env is not None else os.environ
    path = Path(config_path)

    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, Mapping):
            data = {}
        return _parse_config(data)

    return _load_env_config(source_env)


__all__ = [
    "CameraSettings",
    "Config",
    "DEFAULT_CONFIG_FILE",
    "PRUSA_CONNECT_SNAPSHOT_ENDPOINT",
    "PrinterSettings",
    "PrusaConnectSettings",
    "TimelapseSettings",
    "load_config",
]
