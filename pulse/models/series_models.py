"""Input-side data models: points, records and transform configuration."""

import math
from datetime import date
from typing import Any, Dict, List, Literal, Optional

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field


# One row of input data (e.g. one day of metrics). Insertion order matters.
Record = Dict[str, Any]

NormalizationMethod = Literal["none", "minmax", "zscore"]
TimeBucket = Literal["none", "day", "week", "month"]


class TimeSeriesPoint(BaseModel):
    """A single observation of a numeric series at day granularity."""

    model_config = ConfigDict(frozen=True)

    date: date
    value: float


class FormulaSpec(BaseModel):
    """A named arithmetic expression that derives one new field per row."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Name of the derived field")
    expression: str = Field(description="Arithmetic over field names, e.g. 'likes + shares * 0.5'")


class TransformConfig(BaseModel):
    """
    Transform configuration for one chart/series.

    Optional keys use None for "not configured".
    """

    x_key: str
    y_keys: List[str] = Field(default_factory=list)
    right_axis_keys: Optional[List[str]] = None
    date_key: Optional[str] = Field(
        default=None,
        description="Field parsed for time bucketing (defaults to x_key)"
    )

    formula: Optional[FormulaSpec] = None
    time_bucket: TimeBucket = "none"
    normalization: NormalizationMethod = "none"
    ci_lower_key: Optional[str] = None
    ci_upper_key: Optional[str] = None
    band_key: str = "width"
    moving_average_window: int = Field(default=1, ge=1)

    @property
    def bucket_key(self) -> str:
        return self.date_key or self.x_key

    @property
    def value_keys(self) -> List[str]:
        """Fields the numeric steps operate on, in order, without duplicates."""
        keys = list(self.y_keys) + list(self.right_axis_keys or [])
        if self.formula and self.formula.name.strip():
            keys.append(self.formula.name)
        unique = []
        for key in keys:
            if key not in unique:
                unique.append(key)
        return unique


def coerce_date(value: Any) -> Optional[date]:
    """Return a calendar date for date-like values, or None when unparsable."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, date, pd.Timestamp)):
        try:
            parsed = pd.to_datetime(value)
        except (ValueError, TypeError, OverflowError):
            return None
        if pd.isna(parsed):
            return None
        return parsed.date()
    return None


def to_number(value: Any) -> Optional[float]:
    """Return a finite float for numeric cells (numeric strings included), else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number
