"""Shared fixtures for the engine tests."""

from datetime import date, timedelta
from typing import Callable, List, Sequence

import pytest

from pulse.core.config import get_settings
from pulse.models.series_models import TimeSeriesPoint


def build_series(
    values: Sequence[float],
    start: date = date(2024, 1, 1),
    step_days: int = 1
) -> List[TimeSeriesPoint]:
    return [
        TimeSeriesPoint(date=start + timedelta(days=i * step_days), value=float(v))
        for i, v in enumerate(values)
    ]


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Isolate every test from PULSE_* variables and the settings cache."""
    monkeypatch.delenv("PULSE_VERBOSE", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_series() -> Callable[..., List[TimeSeriesPoint]]:
    return build_series


@pytest.fixture
def linear_series() -> List[TimeSeriesPoint]:
    """y = 3x + 7 over 60 days."""
    return build_series([3 * x + 7 for x in range(60)])


@pytest.fixture
def week_series() -> List[TimeSeriesPoint]:
    """Seven daily points with dips at index 2 and 5."""
    return build_series([100, 110, 90, 120, 130, 95, 140])


@pytest.fixture
def weekly_pattern_series() -> List[TimeSeriesPoint]:
    """Eight weeks of a strong repeating weekly profile (2024-01-01 is a Monday)."""
    profile = [100, 120, 140, 130, 110, 60, 50]
    return build_series([profile[i % 7] for i in range(56)])
