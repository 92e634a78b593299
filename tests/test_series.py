from datetime import datetime, timedelta

import pytest

from fit_overlay.errors import (
    EmptySeriesError,
    IndexOutOfRangeError,
    MissingTimestampError,
    NonMonotonicSeriesError,
)
from fit_overlay.series import METRICS, Sample, Series, build_series, coerce_metric

from conftest import T0, at


def test_build_preserves_order_and_length(make_series) -> None:
    series = make_series((0, {"power": 1}), (1, {"power": 2}), (1, {"power": 3}))
    assert len(series) == 3
    assert [s.power for s in series] == [1, 2, 3]
    assert series.at(2).power == 3
    assert series.first.timestamp == T0
    assert series.last.timestamp == at(1)
    assert series.duration == timedelta(seconds=1)


def test_build_rejects_empty_input() -> None:
    with pytest.raises(EmptySeriesError):
        Series.build([])


def test_build_rejects_missing_timestamp() -> None:
    with pytest.raises(MissingTimestampError, match="record 1"):
        build_series([{"timestamp": T0, "power": 1}, {"power": 2}])


def test_build_rejects_non_datetime_timestamp() -> None:
    with pytest.raises(MissingTimestampError):
        build_series([{"timestamp": 12345}])


def test_build_rejects_decreasing_timestamps() -> None:
    with pytest.raises(NonMonotonicSeriesError):
        build_series([{"timestamp": at(5)}, {"timestamp": at(4)}])


def test_absent_metrics_stay_absent_and_zero_stays_zero() -> None:
    series = build_series([{"timestamp": T0, "power": 0}])
    s = series.at(0)
    assert s.power == 0
    assert s.heart_rate is None
    assert s.cadence is None
    assert s.enhanced_altitude is None


def test_required_metrics_default_to_zero() -> None:
    s = build_series([{"timestamp": T0}]).at(0)
    assert s.distance == 0.0
    assert s.enhanced_speed == 0.0


def test_malformed_values_degrade_to_absent() -> None:
    s = build_series(
        [{"timestamp": T0, "power": "lots", "heart_rate": float("nan"), "cadence": True}]
    ).at(0)
    assert s.power is None
    assert s.heart_rate is None
    assert s.cadence is None


def test_values_are_coerced_to_metric_types() -> None:
    assert coerce_metric("power", 250.6) == 251
    assert isinstance(coerce_metric("distance", 12), float)
    assert coerce_metric("fractional_cadence", 0.5) == 0.5


def test_naive_timestamps_are_taken_as_utc() -> None:
    naive = datetime(2023, 5, 25, 15, 15, 45)
    s = build_series([{"timestamp": naive}]).at(0)
    assert s.timestamp == T0


def test_build_accepts_samples() -> None:
    series = Series.build([Sample(timestamp=T0, power=5), {"timestamp": at(1)}])
    assert series.at(0).power == 5
    assert series.at(1).power is None


@pytest.mark.parametrize("i", [-1, 2, 100])
def test_at_is_bounds_checked(make_series, i) -> None:
    series = make_series((0, {}), (1, {}))
    with pytest.raises(IndexOutOfRangeError):
        series.at(i)


def test_index_error_is_an_index_error(make_series) -> None:
    with pytest.raises(IndexError):
        make_series((0, {})).at(1)


def test_sample_metric_lookup() -> None:
    s = Sample(timestamp=T0, heart_rate=120)
    assert s.metric("heart_rate") == 120
    assert set(METRICS) >= {"power", "heart_rate", "enhanced_speed", "distance"}
    with pytest.raises(KeyError):
        s.metric("timestamp")


def test_build_rejects_sample_without_timestamp() -> None:
    with pytest.raises(MissingTimestampError, match="record 0"):
        Series.build([Sample(timestamp=None), Sample(timestamp=None)])


def test_build_takes_naive_sample_timestamps_as_utc() -> None:
    naive = datetime(2023, 5, 25, 15, 15, 45)
    series = Series.build([Sample(timestamp=naive, power=1), {"timestamp": at(10), "power": 2}])
    assert series.at(0).timestamp == T0
    assert series.at(0).timestamp.tzinfo is not None
    assert series.at(0).power == 1


def test_oversized_values_degrade_to_absent() -> None:
    s = build_series([{"timestamp": T0, "power": 10**400, "distance": 10**400}]).at(0)
    assert s.power is None
    assert s.distance == 0.0
