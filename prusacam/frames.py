"""Helpers for the numbered frame files written by a time-lapse capture."""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional

FRAME_PATTERN = "image%06d.jpg"
FRAME_GLOB = "*.jpg"
_FRAME_RE = re.compile(r"^image(\d+)\.jpg$")


def frame_filename(sequence: int) -> str:
    return FRAME_PATTERN % sequence


def frame_path(directory: Path, sequence: int) -> Path:
    return directory / frame_filename(sequence)


def list_frames(directory: Path) -> List[Path]:
    """Return the ``.jpg`` files in ``directory`` in lexical order."""
    if not directory.is_dir():
        return []
    return sorted(
        (entry for entry in directory.iterdir() if entry.is_file() and entry.suffix == ".jpg"),
        key=lambda entry: entry.name,
    )


def find_last_frame(directory: Path) -> Optional[Path]:
    """Return the lexically last ``.jpg`` file, or ``None`` when there is none."""
    frames = list_frames(directory)
    return frames[-1] if frames else None


def count_frames(directory: Path) -> int:
    return len(list_frames(directory))


def frame_sequence_number(path: Path) -> int:
    """Extract the sequence number encoded in a frame filename."""
    match = _FRAME_RE.match(path.name)
    if match is None:
        raise ValueError(f"not a time-lapse frame: {path.name}")
    return int(match.group(1))


__all__ = [
    "FRAME_GLOB",
    "FRAME_PATTERN",
    "count_frames",
    "find_last_frame",
    "frame_filename",
    "frame_path",
    "frame_sequence_number",
    "list_frames",
]
