"""Video inspection and processing with ffprobe and ffmpeg."""

from __future__ import annotations

import json
import subprocess
from typing import Union

_ACCURACY = 0.001


def check_ratio(a: int, b: int, c: int, d: int) -> bool:
    """Tell whether a/b and c/d agree within a small tolerance."""
    if b == 0 or d == 0:
        return False
    return abs(a / b - c / d) <= _ACCURACY


def classify_aspect_ratio(width: int, height: int) -> str:
    """Name the aspect ratio: "16:9", "9:16" or "other"."""
    if check_ratio(width, height, 16, 9):
        return "16:9"
    if check_ratio(width, height, 9, 16):
        return "9:16"
    return "other"


def parse_probe_output(output: Union[bytes, str]) -> tuple[int, int]:
    """Return width and height of the first stream in ffprobe's JSON output."""
    data = json.loads(output)
    streams = data.get("streams") if isinstance(data, dict) else None
    if not streams:
        raise ValueError("ffprobe output has no streams")
    first = streams[0]
    return int(first.get("width") or 0), int(first.get("height") or 0)


def get_video_aspect_ratio(file_path: str) -> str:
    """Probe a video file and classify its aspect ratio."""
    result = subprocess.run(
        ["ffprobe", "-v", "error", "-print_format", "json", "-show_streams", file_path],
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        check=True,
    )
    width, height = parse_probe_output(result.stdout)
    return classify_aspect_ratio(width, height)


def key_prefix_for_ratio(aspect_ratio: str) -> str:
    """Return the storage key prefix for an aspect ratio name."""
    if aspect_ratio == "16:9":
        return "landscape/"
    if aspect_ratio == "9:16":
        return "portrait/"
    return "other/"


def process_video_for_fast_start(file_path: str) -> str:
    """Rewrite a video with its index at the front; return the new path."""
    output_path = file_path + ".processing"
    subprocess.run(
        [
            "ffmpeg",
            "-i",
            file_path,
            "-c",
            "copy",
            "-movflags",
            "faststart",
            "-f",
            "mp4",
            output_path,
        ],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        check=True,
    )
    return output_path