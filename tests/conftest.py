from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from fit_overlay.series import Series

T0 = datetime(2023, 5, 25, 15, 15, 45, tzinfo=UTC)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def make_series() -> Callable[..., Series]:
    """Build a series from (seconds after T0, {metric: value}) pairs."""

    def make(*points: tuple[float, dict]) -> Series:
        return Series.build({"timestamp": at(sec), **metrics} for sec, metrics in points)

    return make


@pytest.fixture
def power_series(make_series) -> Series:
    return make_series(
        (0, {"power": 100}),
        (10, {"power": 200}),
        (20, {"power": 150}),
    )
