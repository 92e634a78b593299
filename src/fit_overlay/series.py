"""
Telemetry series: an ordered, immutable sequence of timestamped samples.

Each sample carries a fixed set of named metrics. A metric that a record does
not provide is stored as None ("unknown at this instant"), which is distinct
from a measured zero (e.g. 0 W while coasting).
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any

from .clock import to_utc
from .errors import (
    EmptySeriesError,
    IndexOutOfRangeError,
    MissingTimestampError,
    NonMonotonicSeriesError,
)


@dataclass(frozen=True)
class Sample:
    timestamp: datetime
    distance: float = 0.0  # m
    enhanced_speed: float = 0.0  # m/s
    position_lat: int | None = None  # semicircles
    position_long: int | None = None  # semicircles
    heart_rate: int | None = None  # bpm
    cadence: int | None = None  # rpm
    power: int | None = None  # W
    temperature: int | None = None  # C
    accumulated_power: int | None = None  # W
    fractional_cadence: float | None = None
    enhanced_altitude: float | None = None  # m

    def metric(self, name: str) -> int | float | None:
        if name not in METRIC_TYPES:
            raise KeyError(f"unknown metric: {name}")
        return getattr(self, name)


METRIC_TYPES: dict[str, type] = {
    "distance": float,
    "enhanced_speed": float,
    "position_lat": int,
    "position_long": int,
    "heart_rate": int,
    "cadence": int,
    "power": int,
    "temperature": int,
    "accumulated_power": int,
    "fractional_cadence": float,
    "enhanced_altitude": float,
}
METRICS: tuple[str, ...] = tuple(METRIC_TYPES)

# Present on every sample; a record that omits them reads as 0.0.
REQUIRED_METRICS = ("distance", "enhanced_speed")


def coerce_metric(name: str, value: object) -> int | float | None:
    """Convert a decoded field value to the metric's type, or None if unusable."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        f = float(value)
    except OverflowError:
        return None
    if not math.isfinite(f):
        return None
    if METRIC_TYPES[name] is int:
        return int(round(f))
    return f


def sample_from_record(record: Mapping[str, Any], position: int = 0) -> Sample:
    ts = record.get("timestamp")
    if not isinstance(ts, datetime):
        raise MissingTimestampError(f"record {position} has no timestamp")

    values: dict[str, int | float | None] = {}
    for name in METRICS:
        v = coerce_metric(name, record.get(name))
        if v is None and name in REQUIRED_METRICS:
            v = 0.0
        values[name] = v
    return Sample(timestamp=to_utc(ts), **values)


class Series:
    """Read-only sequence of samples with non-decreasing timestamps."""

    __slots__ = ("_samples",)

    def __init__(self, samples: Iterable[Sample]) -> None:
        items = tuple(samples)
        if not items:
            raise EmptySeriesError("telemetry series is empty")
        for i in range(1, len(items)):
            if items[i].timestamp < items[i - 1].timestamp:
                raise NonMonotonicSeriesError(
                    f"sample {i} ({items[i].timestamp.isoformat()}) is earlier than "
                    f"sample {i - 1} ({items[i - 1].timestamp.isoformat()})"
                )
        self._samples = items

    @classmethod
    def build(cls, records: Iterable[Mapping[str, Any] | Sample]) -> Series:
        """
        Build a series from decoded records, keeping their order.

        Records are either ready Samples or mappings of field name -> value
        (e.g. `{f.name: f.value for f in msg}` for a FIT record message).
        Fields other than the timestamp degrade to absent when missing or
        malformed.
        """
        samples: list[Sample] = []
        for i, rec in enumerate(records):
            if isinstance(rec, Sample):
                if not isinstance(rec.timestamp, datetime):
                    raise MissingTimestampError(f"record {i} has no timestamp")
                samples.append(replace(rec, timestamp=to_utc(rec.timestamp)))
            else:
                samples.append(sample_from_record(rec, i))
        return cls(samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    def __repr__(self) -> str:
        return (
            f"Series({len(self)} samples, "
            f"{self.first.timestamp.isoformat()} .. {self.last.timestamp.isoformat()})"
        )

    def at(self, i: int) -> Sample:
        if not 0 <= i < len(self._samples):
            raise IndexOutOfRangeError(
                f"sample index {i} out of range for series of {len(self._samples)}"
            )
        return self._samples[i]

    @property
    def first(self) -> Sample:
        return self._samples[0]

    @property
    def last(self) -> Sample:
        return self._samples[-1]

    @property
    def duration(self) -> timedelta:
        return self.last.timestamp - self.first.timestamp


def build_series(records: Iterable[Mapping[str, Any] | Sample]) -> Series:
    return Series.build(records)
