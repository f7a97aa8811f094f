"""HTTP front end for snapshots, the live stream and finished videos."""

from __future__ import annotations

import html
import logging
from pathlib import Path
from typing import Any, Iterator, Optional

from flask import Flask, Response, abort, send_from_directory

from prusacam.errors import PrusaCamError

STREAM_BOUNDARY = "frame"

LOGGER = logging.getLogger(__name__)


def _error_response(exc: Exception) -> Response:
    return Response(str(exc), status=500, mimetype="text/plain")


def _multipart_frames(stream: Any) -> Iterator[bytes]:
    boundary = STREAM_BOUNDARY.encode()
    LOGGER.info("Started stream")
    try:
        for frame in stream:
            yield (
                b"--"
                + boundary
                + b"\r\nContent-Type: image/jpeg\r\nContent-Length: "
                + str(len(frame)).encode()
                + b"\r\n\r\n"
                + frame
                + b"\r\n"
            )
    finally:
        stream.stop()
        LOGGER.info("Finished stream")


def _render_listing(directory: Path) -> str:
    entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
    lines = ["<pre>"]
    for entry in entries:
        name = entry.name + ("/" if entry.is_dir() else "")
        lines.append(f'<a href="{html.escape(name, quote=True)}">{html.escape(name)}</a>')
    lines.append("</pre>")
    return "\n".join(lines)


def _resolve_listing_path(root: Path, relpath: str) -> Optional[Path]:
    target = (root / relpath).resolve()
    if target != root and root not in target.parents:
        return None
    return target


def create_app(service: Any) -> Flask:
    """Build the Flask app around a started camera service."""
    app = Flask(__name__)
    output_root = Path(service.output_dir).expanduser().resolve()

    @app.get("/snapshot")
    def snapshot() -> Response:
        try:
            frame = service.snapshot()
        except PrusaCamError as exc:
            LOGGER.warning("Snapshot failed: %s", exc)
            return _error_response(exc)
        return Response(frame, mimetype="image/jpeg")

    @app.get("/stream")
    def stream() -> Response:
        try:
            frames = service.stream()
        except PrusaCamError as exc:
            return _error_response(exc)
        return Response(
            _multipart_frames(frames),
            mimetype=f"multipart/x-mixed-replace; boundary={STREAM_BOUNDARY}",
        )

    @app.post("/forcesend")
    def force_send() -> Response:
        try:
            service.force_send()
        except PrusaCamError as exc:
            LOGGER.warning("Force send failed: %s", exc)
            return _error_response(exc)
        return Response(status=204)

    @app.get("/list/", defaults={"relpath": ""})
    @app.get("/list/<path:relpath>")
    def listing(relpath: str) -> Any:
        if not output_root.is_dir():
            abort(404)
        target = _resolve_listing_path(output_root, relpath)
        if target is None or not target.exists():
            abort(404)
        if target.is_dir():
            return Response(_render_listing(target), mimetype="text/html")
        return send_from_directory(output_root, target.relative_to(output_root).as_posix())

    return app


__all__ = ["STREAM_BOUNDARY", "create_app"]
