"""
Time helpers: timestamp parsing/normalization and the video frame clock.

Every absolute time in this package is an aware datetime in UTC. Frame `i` of a
video starting at `start` with `fps` frames per second happens at

    start + i / fps
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta, UTC


def parse_iso8601(s: str) -> datetime:
    """
    Parse an ffprobe-style timestamp into an aware datetime in UTC.

    Expected inputs (examples from QuickTime/MOV metadata):
      - 2025-12-14T10:41:31.000000Z
      - 2025-12-14T10:41:31Z
      - 2025-12-14T14:41:31+0400
      - 2025-12-14T14:41:31+04:00
    """
    s = s.strip()
    if not s:
        raise ValueError("empty datetime string")
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    # Convert timezone offset like +0000 to +00:00 (Python expects a colon).
    m = re.match(r"^(.*)([+-]\d{2})(\d{2})$", s)
    if m:
        s = f"{m.group(1)}{m.group(2)}:{m.group(3)}"

    # Some cameras write nanoseconds; datetime only keeps microseconds.
    m = re.match(r"^(.*\.\d{6})\d+(.*)$", s)
    if m:
        s = m.group(1) + m.group(2)

    dt = datetime.fromisoformat(s)
    return to_utc(dt)


def to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def has_timezone(s: str) -> bool:
    return re.search(r"(Z|[+-]\d{2}:?\d{2})$", s.strip()) is not None


def frame_time(start: datetime, index: int, fps: float) -> datetime:
    return start + timedelta(seconds=index / fps)


def first_frame_at_or_after(start: datetime, fps: float, t: datetime) -> int:
    """Smallest frame index (>= 0) whose frame time is not before `t`."""
    idx = max(0, math.ceil((t - start).total_seconds() * fps))
    # The float estimate can be off by one either way around exact boundaries.
    while idx > 0 and frame_time(start, idx - 1, fps) >= t:
        idx -= 1
    while frame_time(start, idx, fps) < t:
        idx += 1
    return idx


def last_frame_at_or_before(start: datetime, fps: float, t: datetime) -> int:
    """Largest frame index whose frame time is not after `t` (-1 if none)."""
    if t < start:
        return -1
    idx = math.floor((t - start).total_seconds() * fps)
    while frame_time(start, idx + 1, fps) <= t:
        idx += 1
    while idx >= 0 and frame_time(start, idx, fps) > t:
        idx -= 1
    return idx
