"""Decode FIT `record` messages into a telemetry Series (via fitparse)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fitparse import FitFile

from .clock import to_utc
from .series import Series

# Older devices only write the non-enhanced variants.
FALLBACK_FIELDS = {
    "enhanced_speed": "speed",
    "enhanced_altitude": "altitude",
}


def _is_number(v: object) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def parse_fit_messages(fit: FitFile) -> list[dict[str, Any]]:
    """Return one field mapping per record message, in file order."""
    records: list[dict[str, Any]] = []
    last_distance: float | None = None
    for msg in fit.get_messages("record"):
        fields = {f.name: f.value for f in msg}

        ts = fields.get("timestamp")
        if isinstance(ts, datetime):
            fields["timestamp"] = to_utc(ts)

        for name, fallback in FALLBACK_FIELDS.items():
            if not _is_number(fields.get(name)) and _is_number(fields.get(fallback)):
                fields[name] = fields[fallback]

        # Distance is cumulative; a record without it has not moved backwards.
        if _is_number(fields.get("distance")):
            last_distance = float(fields["distance"])
        elif last_distance is not None:
            fields["distance"] = last_distance

        records.append(fields)

    fill_speed_from_distance(records)
    return records


def fill_speed_from_distance(records: list[dict[str, Any]]) -> None:
    """Fill in missing speeds (m/s) from distance/time deltas."""
    for prev, cur in zip(records, records[1:]):
        if _is_number(cur.get("enhanced_speed")):
            continue
        t0, t1 = prev.get("timestamp"), cur.get("timestamp")
        d0, d1 = prev.get("distance"), cur.get("distance")
        if not (isinstance(t0, datetime) and isinstance(t1, datetime)):
            continue
        if not (_is_number(d0) and _is_number(d1)):
            continue
        dt = (t1 - t0).total_seconds()
        dd = d1 - d0
        if dt > 0 and dd >= 0:
            cur["enhanced_speed"] = dd / dt
    if len(records) > 1 and not _is_number(records[0].get("enhanced_speed")):
        speed = records[1].get("enhanced_speed")
        if _is_number(speed):
            records[0]["enhanced_speed"] = speed


def read_fit(fit_path: str) -> Series:
    return Series.build(parse_fit_messages(FitFile(fit_path)))
