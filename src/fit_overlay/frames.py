"""
Pre-alignment: decide which video frames have telemetry coverage, then feed
them through an Aligner in order.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime

from .aligner import AlignedSample, Aligner
from .clock import first_frame_at_or_after, frame_time, last_frame_at_or_before
from .series import Series

TAILS = ("stop", "clamp")


@dataclass(frozen=True)
class FramePlan:
    first: int  # first frame with telemetry coverage
    stop: int  # one past the last frame to align
    frame_count: int

    @property
    def skipped_head(self) -> int:
        return self.first

    @property
    def skipped_tail(self) -> int:
        return self.frame_count - self.stop

    def __len__(self) -> int:
        return self.stop - self.first


def plan_frames(
    series: Series,
    start: datetime,
    fps: float,
    frame_count: int,
    *,
    tail: str = "stop",
) -> FramePlan:
    if fps <= 0:
        raise ValueError(f"frame rate must be positive, got {fps}")
    if frame_count < 0:
        raise ValueError(f"frame count must not be negative, got {frame_count}")
    if tail not in TAILS:
        raise ValueError(f"unknown tail mode: {tail}")

    first = first_frame_at_or_after(start, fps, series.first.timestamp)
    if tail == "clamp":
        stop = frame_count
    else:
        stop = min(frame_count, last_frame_at_or_before(start, fps, series.last.timestamp) + 1)

    if first >= stop:
        raise ValueError(
            "No telemetry samples overlap the video timeline. "
            "Check the video's creation_time tag or adjust with --offset/--start."
        )
    return FramePlan(first=first, stop=stop, frame_count=frame_count)


def align_frames(
    series: Series,
    plan: FramePlan,
    *,
    start: datetime,
    fps: float,
    policies: Mapping[str, str] | None = None,
    origin: str = "sample",
) -> Iterator[tuple[int, AlignedSample]]:
    # Built eagerly so a too-short series fails here, not on first iteration.
    aligner = Aligner(series, start, policies=policies, origin=origin)
    return (
        (i, aligner.align(frame_time(start, i, fps)))
        for i in range(plan.first, plan.stop)
    )
