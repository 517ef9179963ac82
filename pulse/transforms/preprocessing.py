"""
Series preprocessing ahead of forecasting.

Covers outlier detection and winsorization, stationarity testing with
differencing, seasonal adjustment, and a `preprocess` entry point that chains
them after gap imputation.
"""

import warnings
from datetime import date
from typing import Dict, List, Literal, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from ..core.config import get_settings
from ..models.series_models import TimeSeriesPoint
from .cleaning import ImputationMethod, impute_missing

warnings.filterwarnings('ignore')

OutlierMethod = Literal["zscore", "iqr"]
SeasonalModel = Literal["additive", "multiplicative"]


class OutlierPoint(BaseModel):
    """A point flagged by one of the outlier rules."""

    index: int
    date: date
    value: float
    type: Literal["outlier", "anomaly"]
    severity: Literal["low", "medium", "high"]
    method: OutlierMethod


class StationarityResult(BaseModel):
    """Differenced series and the ADF outcome for it."""

    points: List[TimeSeriesPoint]
    is_stationary: bool
    p_value: Optional[float] = Field(
        default=None,
        description="ADF p-value; None when the series was too short or constant to test"
    )
    difference_order: int = 0


class SeasonalAdjustment(BaseModel):
    """Seasonally adjusted series plus its decomposition."""

    points: List[TimeSeriesPoint]
    period: int
    method: SeasonalModel = "additive"
    seasonal: List[float] = Field(
        default_factory=list,
        description="Seasonal component for each position of one cycle (empty when not removed)"
    )
    trend: List[Optional[float]] = Field(default_factory=list)
    residual: List[Optional[float]] = Field(default_factory=list)
    strength: float = 0.0


class PreprocessingOptions(BaseModel):
    """Which preprocessing steps to run. None means use the settings default."""

    impute: bool = True
    handle_outliers: bool = True
    remove_seasonality: bool = False
    make_stationary: bool = False
    imputation_method: ImputationMethod = "linear"
    max_gap_size: int = 5
    outlier_threshold: Optional[float] = None
    seasonal_period: Optional[int] = None


class PreprocessingResult(BaseModel):
    points: List[TimeSeriesPoint]
    transformations: List[str] = Field(default_factory=list)
    outliers: List[OutlierPoint] = Field(default_factory=list)
    stationarity: Optional[StationarityResult] = None
    seasonality: Optional[SeasonalAdjustment] = None


def _values(points: Sequence[TimeSeriesPoint]) -> np.ndarray:
    return np.array([p.value for p in points], dtype=float)


def _optional(values: np.ndarray) -> List[Optional[float]]:
    return [float(v) if np.isfinite(v) else None for v in values]


def _zscore_outliers(points, values, threshold) -> List[OutlierPoint]:
    finite = values[np.isfinite(values)]
    mean, std = float(finite.mean()), float(finite.std())
    if std == 0:
        return []

    found = []
    for i in np.flatnonzero(np.isfinite(values)):
        z = abs(values[i] - mean) / std
        if z <= threshold:
            continue
        if z > threshold * 2:
            severity = "high"
        elif z > threshold * 1.5:
            severity = "medium"
        else:
            severity = "low"
        found.append(OutlierPoint(
            index=int(i),
            date=points[i].date,
            value=float(values[i]),
            type="anomaly" if z > threshold * 1.5 else "outlier",
            severity=severity,
            method="zscore"
        ))
    return found


def _iqr_outliers(points, values) -> List[OutlierPoint]:
    q1, q3 = np.percentile(values[np.isfinite(values)], [25, 75])
    iqr = q3 - q1
    lower, upper = q1 - 1.5 * iqr, q3 + 1.5 * iqr
    extreme_lower, extreme_upper = q1 - 3 * iqr, q3 + 3 * iqr

    found = []
    for i in np.flatnonzero(np.isfinite(values)):
        value = values[i]
        if lower <= value <= upper:
            continue
        extreme = value < extreme_lower or value > extreme_upper
        found.append(OutlierPoint(
            index=int(i),
            date=points[i].date,
            value=float(value),
            type="anomaly" if extreme else "outlier",
            severity="high" if extreme else "medium",
            method="iqr"
        ))
    return found


def detect_outliers(
    series: Sequence[TimeSeriesPoint],
    threshold: Optional[float] = None,
    methods: Sequence[OutlierMethod] = ("zscore", "iqr")
) -> List[OutlierPoint]:
    """
    Flag outliers by z-score and/or interquartile range.

    z-score (population std): |z| > threshold flags the point; above
    1.5x threshold it is an anomaly of medium severity, above 2x threshold
    high. IQR: outside the 1.5 IQR fences is a medium outlier, outside the
    3 IQR fences a high anomaly. A point flagged by both methods keeps the
    first flag unless a later one is high and the first is not.

    Args:
        series: Input series, in the order indexes refer to
        threshold: z-score cut-off (defaults to settings.outlier_threshold)
        methods: Rules to apply, in order

    Returns:
        One OutlierPoint per flagged index, sorted by index
    """
    threshold = threshold or get_settings().outlier_threshold
    points = list(series)
    values = _values(points)
    if not np.isfinite(values).any():
        return []

    found: Dict[int, OutlierPoint] = {}
    for method in methods:
        if method == "zscore":
            candidates = _zscore_outliers(points, values, threshold)
        elif method == "iqr":
            candidates = _iqr_outliers(points, values)
        else:
            raise ValueError(f"Unknown outlier method: {method}")

        for candidate in candidates:
            current = found.get(candidate.index)
            if current is None or (candidate.severity == "high" and current.severity != "high"):
                found[candidate.index] = candidate

    return [found[i] for i in sorted(found)]


def winsorize(
    series: Sequence[TimeSeriesPoint],
    outliers: Sequence[OutlierPoint],
    limits: Tuple[float, float] = (5.0, 95.0)
) -> List[TimeSeriesPoint]:
    """Clip high-severity outliers to the given percentiles of the series."""
    points = list(series)
    targets = {o.index for o in outliers if o.severity == "high"}
    values = _values(points)
    finite = values[np.isfinite(values)]
    if not targets or finite.size == 0:
        return points

    low, high = np.percentile(finite, limits)
    return [
        TimeSeriesPoint(date=p.date, value=float(np.clip(p.value, low, high))) if i in targets else p
        for i, p in enumerate(points)
    ]


def check_stationarity(
    series: Sequence[TimeSeriesPoint],
    alpha: Optional[float] = None
) -> Tuple[bool, Optional[float]]:
    """
    Augmented Dickey-Fuller test.

    Series with fewer than 10 finite points, or a constant value, count as
    stationary without testing.

    Returns:
        (is_stationary, p_value)
    """
    settings = get_settings()
    alpha = alpha or settings.stationarity_alpha
    values = _values(series)
    values = values[np.isfinite(values)]
    if values.size < 10 or np.ptp(values) == 0:
        return True, None

    from statsmodels.tsa.stattools import adfuller

    try:
        p_value = float(adfuller(values, autolag='AIC')[1])
    except (ValueError, np.linalg.LinAlgError) as e:
        if settings.verbose:
            print(f"[WARN] Could not test stationarity: {e}")
        return False, None

    return p_value < alpha, p_value


def make_stationary(
    series: Sequence[TimeSeriesPoint],
    max_differences: Optional[int] = None,
    alpha: Optional[float] = None
) -> StationarityResult:
    """
    Difference the series until the ADF test passes.

    Each difference drops the first point and dates the change by the later
    observation. Stops after `max_differences` even if still non-stationary.
    """
    if max_differences is None:
        max_differences = get_settings().max_differences

    points = sorted(series, key=lambda p: p.date)
    is_stationary, p_value = check_stationarity(points, alpha)
    order = 0

    while not is_stationary and order < max_differences and len(points) > 1:
        points = [
            TimeSeriesPoint(date=current.date, value=current.value - previous.value)
            for previous, current in zip(points, points[1:])
        ]
        order += 1
        is_stationary, p_value = check_stationarity(points, alpha)

    return StationarityResult(
        points=points,
        is_stationary=is_stationary,
        p_value=p_value,
        difference_order=order
    )


def remove_seasonality(
    series: Sequence[TimeSeriesPoint],
    period: Optional[int] = None,
    method: SeasonalModel = "additive"
) -> SeasonalAdjustment:
    """
    Remove the seasonal component found by classical decomposition.

    Additive adjustment subtracts the seasonal component, multiplicative
    divides by it. Series shorter than two full cycles, or with missing
    values, are returned unchanged with an empty seasonal profile.

    Raises:
        ValueError: multiplicative adjustment of a series with values <= 0
    """
    period = period or get_settings().seasonal_period
    points = sorted(series, key=lambda p: p.date)
    values = _values(points)
    n = len(points)

    unchanged = SeasonalAdjustment(
        points=points,
        period=period,
        method=method,
        trend=[None] * n,
        residual=[None] * n
    )
    if period < 2 or n < 2 * period:
        return unchanged
    if not np.isfinite(values).all():
        if get_settings().verbose:
            print("[WARN] Seasonal adjustment skipped: series has missing values")
        return unchanged

    from statsmodels.tsa.seasonal import seasonal_decompose

    decomposition = seasonal_decompose(pd.Series(values), model=method, period=period)
    seasonal = decomposition.seasonal.to_numpy()
    resid = decomposition.resid.to_numpy()

    if method == "multiplicative":
        adjusted = values / seasonal
        seasonal_part, resid_part = seasonal - 1, resid - 1
    else:
        adjusted = values - seasonal
        seasonal_part, resid_part = seasonal, resid

    mask = np.isfinite(resid_part)
    strength = 0.0
    combined_var = float(np.var(seasonal_part[mask] + resid_part[mask])) if mask.any() else 0.0
    if combined_var > 0:
        strength = max(0.0, 1 - float(np.var(resid_part[mask])) / combined_var) * 100

    return SeasonalAdjustment(
        points=[TimeSeriesPoint(date=p.date, value=float(v)) for p, v in zip(points, adjusted)],
        period=period,
        method=method,
        seasonal=[float(v) for v in seasonal[:period]],
        trend=_optional(decomposition.trend.to_numpy()),
        residual=_optional(resid),
        strength=round(strength, 2)
    )


def preprocess(
    series: Sequence[TimeSeriesPoint],
    options: Optional[PreprocessingOptions] = None
) -> PreprocessingResult:
    """
    Run the enabled preprocessing steps in order.

    Steps: impute gaps, winsorize high-severity outliers, remove seasonality,
    difference to stationarity. Each applied step adds a line to
    `transformations`.

    Args:
        series: Input series (sorted by date before processing)
        options: Steps to run (defaults to imputation and outlier handling)

    Returns:
        PreprocessingResult with the processed points
    """
    options = options or PreprocessingOptions()
    settings = get_settings()
    period = options.seasonal_period or settings.seasonal_period

    points = sorted(series, key=lambda p: p.date)
    result = PreprocessingResult(points=points)

    if options.impute:
        missing = int((~np.isfinite(_values(points))).sum())
        if missing:
            rows = impute_missing(
                [{'value': p.value} for p in points],
                ['value'],
                options.imputation_method,
                options.max_gap_size,
                seasonal_period=period
            )
            points = [
                TimeSeriesPoint(date=p.date, value=float(row['value']))
                for p, row in zip(points, rows)
            ]
            filled = missing - int((~np.isfinite(_values(points))).sum())
            if filled:
                result.transformations.append(f"Imputed {filled} missing values")

    if options.handle_outliers:
        result.outliers = detect_outliers(points, options.outlier_threshold)
        treated = sum(1 for o in result.outliers if o.severity == "high")
        if treated:
            points = winsorize(points, result.outliers)
            result.transformations.append(f"Treated {treated} outliers via winsorization")

    if options.remove_seasonality:
        result.seasonality = remove_seasonality(points, period)
        if result.seasonality.seasonal:
            points = result.seasonality.points
            result.transformations.append(f"Removed seasonality (period={period})")

    if options.make_stationary:
        result.stationarity = make_stationary(points)
        points = result.stationarity.points
        if result.stationarity.difference_order:
            result.transformations.append(
                f"Applied {result.stationarity.difference_order} differences for stationarity"
            )

    if settings.verbose:
        for step in result.transformations:
            print(f"[PREPROCESS] {step}")

    result.points = points
    return result
