"""Video probing (ffprobe) and subtitle burn-in (ffmpeg)."""

from __future__ import annotations

import json
import os
import subprocess
import sys
from collections import deque
from dataclasses import dataclass
from datetime import datetime, UTC
from fractions import Fraction
from pathlib import Path
from typing import Any

from .clock import has_timezone, parse_iso8601


@dataclass(frozen=True)
class VideoInfo:
    width: int
    height: int
    duration: float | None  # seconds
    fps: float
    frame_count: int
    creation_time: datetime  # UTC
    source: str  # where creation_time came from


def run_ffprobe(video_path: str, ffprobe_bin: str) -> dict[str, Any]:
    cmd = [
        ffprobe_bin,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_entries",
        "format=duration:format_tags"
        ":stream=width,height,r_frame_rate,avg_frame_rate,nb_frames:stream_tags",
        "-select_streams",
        "v:0",
        video_path,
    ]
    p = subprocess.run(cmd, capture_output=True, text=True)
    if p.returncode != 0:
        msg = f"ffprobe failed (code {p.returncode})."
        if p.stderr:
            msg += f"\nstderr:\n{p.stderr.strip()}"
        raise RuntimeError(msg)
    try:
        return json.loads(p.stdout)
    except json.JSONDecodeError as e:
        out = (p.stdout or "").strip()
        if len(out) > 800:
            out = out[:800] + "..."
        raise RuntimeError(f"Could not parse ffprobe JSON output: {e}\nstdout:\n{out}") from e


CREATION_TIME_KEYS = (
    "creation_time",
    "com.apple.quicktime.creationdate",
    "date",
    "creation_date",
    "encoded_date",
)


def extract_creation_time_tag(ffprobe_json: dict) -> str | None:
    fmt_tags = (ffprobe_json.get("format") or {}).get("tags") or {}
    for k in CREATION_TIME_KEYS:
        if v := fmt_tags.get(k):
            return v

    for stream in ffprobe_json.get("streams") or []:
        tags = stream.get("tags") or {}
        for k in CREATION_TIME_KEYS:
            if v := tags.get(k):
                return v

    return None


def parse_frame_rate(s: str | None) -> float | None:
    """Parse ffprobe rates like "30000/1001" or "25"; None for unknown ("0/0")."""
    if not s:
        return None
    try:
        rate = Fraction(s.strip())
    except (ValueError, ZeroDivisionError):
        return None
    return float(rate) if rate > 0 else None


def get_video_metadata(
    video_path: str, ffprobe_bin: str, *, fps: float | None = None
) -> VideoInfo:
    """Read the first video stream with ffprobe; `fps` overrides its frame rate."""
    data = run_ffprobe(video_path, ffprobe_bin=ffprobe_bin)

    streams = data.get("streams") or []
    if not streams:
        raise ValueError("No video stream found (ffprobe returned no streams).")
    stream = streams[0]

    w = int(stream.get("width") or 0)
    h = int(stream.get("height") or 0)

    dur_text = (data.get("format") or {}).get("duration")
    duration = float(dur_text) if dur_text else None

    if fps is None:
        fps = parse_frame_rate(stream.get("avg_frame_rate")) or parse_frame_rate(
            stream.get("r_frame_rate")
        )
    if fps is None:
        raise ValueError("Could not determine the video frame rate; pass --fps.")

    nb_frames = stream.get("nb_frames")
    if nb_frames and str(nb_frames).isdigit() and int(nb_frames) > 0:
        frame_count = int(nb_frames)
    elif duration is not None:
        frame_count = int(round(duration * fps))
    else:
        raise ValueError("Could not determine the video frame count (no nb_frames or duration).")

    tag = extract_creation_time_tag(data)
    source = "ffprobe:creation_time"
    creation_dt = None
    if tag:
        if not has_timezone(tag):
            print(
                f"WARNING: ffprobe creation_time has no timezone; assuming UTC: {tag}",
                file=sys.stderr,
            )
        try:
            creation_dt = parse_iso8601(tag)
        except ValueError:
            print(f"WARNING: could not parse creation_time: {tag}", file=sys.stderr)

    if creation_dt is None:
        # Fallback: filesystem mtime (UTC). Not always accurate, but better than nothing.
        creation_dt = datetime.fromtimestamp(os.path.getmtime(video_path), tz=UTC)
        source = "filesystem_mtime_utc"

    return VideoInfo(
        width=w,
        height=h,
        duration=duration,
        fps=fps,
        frame_count=frame_count,
        creation_time=creation_dt,
        source=source,
    )


def escape_filter_value(name: str) -> str:
    """Escape a file name for ffmpeg filter syntax (not shell escaping)."""
    for ch in ("\\", ":", "'", "[", "]", ",", ";", "="):
        name = name.replace(ch, f"\\{ch}")
    return name


def build_burn_in_cmd(
    video_in: str,
    ass_name: str,
    video_out: str,
    *,
    ffmpeg_bin: str,
    crf: int,
    preset: str,
    copy_audio: bool,
) -> list[str]:
    cmd = [
        ffmpeg_bin,
        "-y",
        "-i",
        video_in,
        "-vf",
        f"ass=filename='{escape_filter_value(ass_name)}'",
        "-map",
        "0:v:0",
        "-map",
        "0:a?",
        "-c:v",
        "libx264",
        "-crf",
        str(crf),
        "-preset",
        preset,
    ]
    cmd += ["-c:a", "copy"] if copy_audio else ["-c:a", "aac", "-b:a", "192k"]
    if Path(video_out).suffix.lower() in {".mp4", ".m4v"}:
        cmd += ["-movflags", "+faststart"]
    cmd.append(video_out)
    return cmd


def burn_in(
    video_in: str,
    ass_path: str,
    video_out: str,
    *,
    ffmpeg_bin: str,
    crf: int,
    preset: str,
    copy_audio: bool,
) -> None:
    """
    Burn the ASS overlay into a new video using libass (ffmpeg).

    ffmpeg runs with cwd set to the ASS directory so the filter can reference
    the file by name; input/output paths are made absolute for that reason.
    """
    ass_abs = Path(ass_path).resolve()
    cmd = build_burn_in_cmd(
        str(Path(video_in).resolve()),
        ass_abs.name,
        str(Path(video_out).resolve()),
        ffmpeg_bin=ffmpeg_bin,
        crf=crf,
        preset=preset,
        copy_audio=copy_audio,
    )

    proc = subprocess.Popen(
        cmd,
        cwd=ass_abs.parent,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        bufsize=1,
    )
    assert proc.stdout is not None
    tail: deque[str] = deque(maxlen=80)
    for line in proc.stdout:
        sys.stderr.write(line)
        tail.append(line)
    code = proc.wait()
    if code != 0:
        last = "".join(tail).strip()
        msg = f"ffmpeg burn-in failed (code {code})."
        if last:
            msg += f"\nLast ffmpeg output:\n{last}"
        raise RuntimeError(msg)
