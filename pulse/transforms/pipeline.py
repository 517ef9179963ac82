"""
Record transforms applied before charting or analysis.

Every function here is pure: it returns new row dicts and never touches the
rows it was given. `apply_transforms` runs them in the production order
(formula, bucketing, normalization, confidence band, moving average).
"""

from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..models.series_models import (
    NormalizationMethod,
    Record,
    TimeBucket,
    TimeSeriesPoint,
    TransformConfig,
    coerce_date,
    to_number
)
from .formula import apply_formula


def _bucket_start(day: date, bucket: TimeBucket) -> date:
    if bucket == "week":
        return day - timedelta(days=day.weekday())
    if bucket == "month":
        return day.replace(day=1)
    return day


def bucket_by_time(
    records: Sequence[Record],
    date_key: str,
    value_keys: Sequence[str],
    bucket: TimeBucket = "none"
) -> List[Record]:
    """
    Aggregate rows into day, week (ISO, Monday start) or month buckets.

    Every row must carry a parseable date; if any row does not, the rows are
    returned unchanged. Each value key is averaged over the numeric values in
    the bucket (0 when the bucket has none). Other fields are taken from the
    first row of the bucket, and the date field becomes an ISO date string.

    Args:
        records: Input rows
        date_key: Field holding the row date
        value_keys: Fields to average per bucket
        bucket: Granularity ("none" leaves rows as they are)

    Returns:
        One row per bucket, ordered by bucket date
    """
    if bucket == "none" or not records:
        return list(records)

    groups: Dict[date, List[Record]] = {}
    for row in records:
        day = coerce_date(row.get(date_key))
        if day is None:
            return list(records)
        groups.setdefault(_bucket_start(day, bucket), []).append(row)

    bucketed = []
    for start in sorted(groups):
        rows = groups[start]
        merged = dict(rows[0])
        merged[date_key] = start.isoformat()
        for key in value_keys:
            numbers = [n for n in (to_number(r.get(key)) for r in rows) if n is not None]
            merged[key] = float(np.mean(numbers)) if numbers else 0.0
        bucketed.append(merged)

    return bucketed


def normalize(
    records: Sequence[Record],
    keys: Sequence[str],
    method: NormalizationMethod = "none"
) -> List[Record]:
    """
    Rescale each field independently over the whole series.

    minmax maps to [0, 1] (all zeros when the field is constant); zscore uses
    the population standard deviation, replaced by 1 when it is 0. Cells that
    are not numeric are left as they are.
    """
    if method == "none" or not records:
        return list(records)

    output = [dict(row) for row in records]

    for key in keys:
        numbers = [to_number(row.get(key)) for row in records]
        present = np.array([n for n in numbers if n is not None], dtype=float)
        if present.size == 0:
            continue

        if method == "minmax":
            low, high = float(present.min()), float(present.max())
            span = high - low
            scale = (lambda v: (v - low) / span) if span != 0 else (lambda v: 0.0)
        else:
            mean = float(present.mean())
            std = float(present.std()) or 1.0
            scale = lambda v: (v - mean) / std  # noqa: E731

        for row, number in zip(output, numbers):
            if number is not None:
                row[key] = scale(number)

    return output


def add_confidence_band(
    records: Sequence[Record],
    lower_key: Optional[str],
    upper_key: Optional[str],
    band_key: str = "width"
) -> List[Record]:
    """Add `band_key = max(0, upper - lower)` to every row (missing bounds count as 0)."""
    if not lower_key or not upper_key:
        return list(records)

    output = []
    for row in records:
        lower = to_number(row.get(lower_key)) or 0.0
        upper = to_number(row.get(upper_key)) or 0.0
        output.append({**row, band_key: max(0.0, upper - lower)})
    return output


def moving_average(
    records: Sequence[Record],
    keys: Sequence[str],
    window: int = 1
) -> List[Record]:
    """
    Centered moving average with a window that shrinks at the edges.

    For row i the mean is taken over rows [i - w//2, i + w//2] clipped to the
    series bounds, using numeric cells only. A window of 1 or less returns the
    rows unchanged.
    """
    if window <= 1 or not records:
        return list(records)

    half = window // 2
    count = len(records)
    output = [dict(row) for row in records]

    for key in keys:
        numbers = [to_number(row.get(key)) for row in records]
        for i in range(count):
            neighbours = [
                n for n in numbers[max(0, i - half):min(count, i + half + 1)]
                if n is not None
            ]
            if neighbours:
                output[i][key] = sum(neighbours) / len(neighbours)

    return output


def apply_transforms(records: Sequence[Record], config: TransformConfig) -> List[Record]:
    """
    Run the configured transforms in order.

    Order: formula, time bucketing, normalization, confidence band, moving
    average. Bucketing also averages the confidence bound fields.
    """
    rows = list(records)
    value_keys = config.value_keys

    if config.formula is not None:
        rows = apply_formula(rows, config.formula.name, config.formula.expression)

    if config.time_bucket != "none":
        bucket_keys = list(value_keys)
        for bound in (config.ci_lower_key, config.ci_upper_key):
            if bound and bound not in bucket_keys:
                bucket_keys.append(bound)
        rows = bucket_by_time(rows, config.bucket_key, bucket_keys, config.time_bucket)

    rows = normalize(rows, value_keys, config.normalization)
    rows = add_confidence_band(rows, config.ci_lower_key, config.ci_upper_key, config.band_key)
    rows = moving_average(rows, value_keys, config.moving_average_window)

    return rows


def records_to_series(
    records: Sequence[Record],
    date_key: str,
    value_key: str
) -> List[TimeSeriesPoint]:
    """Build a date-sorted series, skipping rows without a date or a numeric value."""
    points = []
    for row in records:
        day = coerce_date(row.get(date_key))
        value = to_number(row.get(value_key))
        if day is None or value is None:
            continue
        points.append(TimeSeriesPoint(date=day, value=value))

    return sorted(points, key=lambda p: p.date)
