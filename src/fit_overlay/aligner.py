"""
Frame aligner: walks a telemetry series forward in lock-step with frame times.

The aligner keeps a cursor on the bracketing interval [current, next) of the
series. Each `align(t)` call first advances the cursor one step at a time until
`t < next.timestamp` (or the terminal interval is reached), then computes where
`t` falls inside the interval and derives every metric from the two samples:

  - "linear" metrics blend current -> next by that fraction. When only one
    side is known its value is held; when neither is, the result is None.
  - "step" metrics report the current sample's value until the cursor moves.

Frames after the last sample keep the terminal interval with the fraction
clamped to 1, so they show the final sample's values.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

from .clock import to_utc
from .errors import FrameOrderError, SeriesExhaustedError, SeriesTooShortError
from .series import METRICS, Sample, Series

LINEAR = "linear"
STEP = "step"
POLICIES = (LINEAR, STEP)

DEFAULT_POLICIES: dict[str, str] = {
    "distance": LINEAR,
    "enhanced_speed": LINEAR,
    "power": LINEAR,
    "accumulated_power": LINEAR,
    "enhanced_altitude": LINEAR,
    # Sparse or quantized signals. Positions are held: a straight blend of
    # semicircles runs the wrong way round across the antimeridian.
    "position_lat": STEP,
    "position_long": STEP,
    "heart_rate": STEP,
    "cadence": STEP,
    "fractional_cadence": STEP,
    "temperature": STEP,
}

# Where elapsed time inside an interval is measured from:
#   "sample":  the interval's first sample timestamp
#   "advance": the frame time at which the cursor moved onto the interval
ORIGINS = ("sample", "advance")

_US = timedelta(microseconds=1)


def interpolate(
    a: int | float | None, b: int | float | None, fraction: float
) -> float | None:
    if a is not None and b is not None:
        # Exact endpoints; a + (b - a) * 1.0 is not always b in floating point.
        if fraction <= 0.0:
            return float(a)
        if fraction >= 1.0:
            return float(b)
        return a + (b - a) * fraction
    if a is not None:
        return float(a)
    if b is not None:
        return float(b)
    return None


@dataclass(frozen=True)
class AlignedSample:
    time: datetime
    bracket_index: int
    fraction: float
    current: Sample
    values: Mapping[str, int | float | None]

    def get(self, name: str, default: float | None = None) -> int | float | None:
        v = self.values.get(name)
        return default if v is None else v


def resolve_policies(overrides: Mapping[str, str] | None = None) -> dict[str, str]:
    policies = dict(DEFAULT_POLICIES)
    for name, policy in (overrides or {}).items():
        if name not in METRICS:
            raise ValueError(f"unknown metric: {name}")
        if policy not in POLICIES:
            raise ValueError(f"unknown policy for {name}: {policy} (expected linear|step)")
        policies[name] = policy
    return policies


class Aligner:
    def __init__(
        self,
        series: Series,
        epoch_start: datetime,
        *,
        policies: Mapping[str, str] | None = None,
        origin: str = "sample",
    ) -> None:
        if len(series) < 2:
            raise SeriesTooShortError(
                f"need at least 2 samples to align, got {len(series)}"
            )
        if origin not in ORIGINS:
            raise ValueError(f"unknown origin: {origin}")

        self.series = series
        self.epoch_start = to_utc(epoch_start)
        self.policies = resolve_policies(policies)
        self.origin = origin

        self.index = 0
        self.last_advance_time = series.first.timestamp
        self.last_advance_offset = (
            self.last_advance_time - self.epoch_start
        ).total_seconds()
        self._last_query: datetime | None = None

    @property
    def current(self) -> Sample:
        return self.series.at(self.index)

    @property
    def next(self) -> Sample:
        return self.series.at(self.index + 1)

    @property
    def terminal(self) -> bool:
        return self.index == len(self.series) - 2

    def covers(self, t: datetime) -> bool:
        t = to_utc(t)
        return self.series.first.timestamp <= t <= self.series.last.timestamp

    def align(self, frame_time: datetime) -> AlignedSample:
        frame_time = to_utc(frame_time)
        if frame_time < self.series.first.timestamp:
            raise SeriesExhaustedError(
                f"{frame_time.isoformat()} is before the first telemetry sample "
                f"({self.series.first.timestamp.isoformat()})"
            )
        if self._last_query is not None and frame_time < self._last_query:
            raise FrameOrderError(
                f"frame time {frame_time.isoformat()} is earlier than the previous "
                f"query {self._last_query.isoformat()}"
            )
        self._last_query = frame_time

        while not self.terminal and frame_time >= self.next.timestamp:
            self._advance(frame_time)

        current = self.current
        nxt = self.next
        fraction = self._fraction(frame_time, current, nxt)

        values: dict[str, int | float | None] = {}
        for name in METRICS:
            a = current.metric(name)
            if self.policies[name] == STEP:
                values[name] = a
            else:
                values[name] = interpolate(a, nxt.metric(name), fraction)

        return AlignedSample(
            time=frame_time,
            bracket_index=self.index,
            fraction=fraction,
            current=current,
            values=values,
        )

    def _advance(self, frame_time: datetime) -> None:
        self.index += 1
        self.last_advance_time = frame_time
        self.last_advance_offset = (frame_time - self.epoch_start).total_seconds()

    def _fraction(self, frame_time: datetime, current: Sample, nxt: Sample) -> float:
        span = (nxt.timestamp - current.timestamp) // _US
        if span <= 0:
            return 0.0
        began = current.timestamp if self.origin == "sample" else self.last_advance_time
        elapsed = (frame_time - began) // _US
        return min(1.0, max(0.0, elapsed / span))
