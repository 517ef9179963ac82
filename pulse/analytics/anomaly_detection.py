"""Trend, seasonality and point-anomaly detection for metric series."""

import math
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats
import warnings
warnings.filterwarnings('ignore')

from ..core.config import get_settings
from ..core.exceptions import InsufficientDataError
from ..models.series_models import TimeSeriesPoint
from .base_models import (
    AnomalyDirection,
    AnomalyPoint,
    AnomalyReport,
    SeasonalityResult,
    TrendAnalysis,
    TrendDirection
)
from .metrics import linear_regression, r_squared


class AnomalyDetector:
    """
    Statistical diagnostics for a single series.

    Trend via least squares, seasonal strength via additive decomposition and
    anomalies via population z-scores.
    """

    def __init__(
        self,
        threshold: Optional[float] = None,
        min_samples: Optional[int] = None,
        confidence_cap: Optional[float] = None
    ):
        """
        Initialize anomaly detector.

        Args:
            threshold: |z| at or above which a point is anomalous (default 2.0)
            min_samples: Fewer points than this are never flagged (default 5)
            confidence_cap: Upper bound for anomaly confidence (default 95)
        """
        settings = get_settings()
        self.threshold = settings.default_z_threshold if threshold is None else threshold
        self.min_samples = settings.anomaly_min_samples if min_samples is None else min_samples
        self.confidence_cap = (
            settings.anomaly_confidence_cap if confidence_cap is None else confidence_cap
        )

    def analyze_trend(self, series: Sequence[TimeSeriesPoint]) -> TrendAnalysis:
        """
        Fit a linear trend over the point index.

        Confidence is r^2 * 100 * log10(n) clamped to [10, 95]; slopes under
        0.01 per step count as stable.
        """
        points = sorted(series, key=lambda p: p.date)
        n = len(points)
        if n == 0:
            raise InsufficientDataError("Cannot analyze the trend of an empty series")

        values = np.array([p.value for p in points], dtype=float)
        xs = np.arange(n, dtype=float)
        slope, intercept = linear_regression(xs, values)
        r2 = r_squared(values, slope * xs + intercept)

        correlation = 0.0
        p_value = 1.0
        if n >= 3 and np.std(values) > 0:
            fit = stats.linregress(xs, values)
            correlation = float(fit.rvalue) if math.isfinite(fit.rvalue) else 0.0
            p_value = float(fit.pvalue) if math.isfinite(fit.pvalue) else 1.0

        confidence = float(np.clip(r2 * 100 * math.log10(n), 10, 95))

        if abs(slope) < 0.01:
            direction = TrendDirection.STABLE
        elif slope > 0:
            direction = TrendDirection.INCREASING
        else:
            direction = TrendDirection.DECREASING

        return TrendAnalysis(
            slope=slope,
            intercept=intercept,
            r_squared=r2,
            correlation=correlation,
            p_value=p_value,
            confidence=confidence,
            direction=direction,
            data_points=n
        )

    def detect_seasonality(
        self,
        series: Sequence[TimeSeriesPoint],
        period: Optional[int] = None
    ) -> SeasonalityResult:
        """
        Measure how much variance the periodic component explains.

        Strength is max(0, 1 - var(resid) / var(seasonal + resid)) * 100.
        Fewer than two full cycles gives strength 0.
        """
        period = period or get_settings().seasonal_period
        points = sorted(series, key=lambda p: p.date)
        n = len(points)

        if period < 2 or n < 2 * period:
            return SeasonalityResult(period=period, strength=0.0, data_points=n)

        from statsmodels.tsa.seasonal import seasonal_decompose

        values = pd.Series([p.value for p in points], dtype=float)
        decomposition = seasonal_decompose(values, model='additive', period=period)

        seasonal = decomposition.seasonal.to_numpy()
        resid = decomposition.resid.to_numpy()
        mask = np.isfinite(resid)

        strength = 0.0
        combined_var = float(np.var(seasonal[mask] + resid[mask])) if mask.any() else 0.0
        if combined_var > 0:
            strength = max(0.0, 1 - float(np.var(resid[mask])) / combined_var) * 100

        profile = [float(v) for v in seasonal[:period]]
        peak = int(np.argmax(profile))
        peak_weekday = None
        if period == 7:
            peak_weekday = points[peak].date.strftime('%A')

        return SeasonalityResult(
            period=period,
            strength=round(strength, 2),
            seasonal=profile,
            peak_position=peak,
            peak_weekday=peak_weekday,
            data_points=n
        )

    def detect_anomalies(
        self,
        series: Sequence[TimeSeriesPoint],
        threshold: Optional[float] = None
    ) -> AnomalyReport:
        """
        Score every point by its population z-score.

        Args:
            series: Observed series
            threshold: Overrides the detector threshold for this call

        Returns:
            AnomalyReport with one entry per point (sorted by date)
        """
        threshold = self.threshold if threshold is None else threshold
        points = sorted(series, key=lambda p: p.date)
        if not points:
            return AnomalyReport(points=[], mean=0.0, std=0.0, threshold=threshold)

        values = np.array([p.value for p in points], dtype=float)
        mean = float(values.mean())
        std = float(values.std())
        can_flag = len(points) >= self.min_samples and std > 0

        scored = []
        for i, point in enumerate(points):
            z = (point.value - mean) / std if std > 0 else 0.0
            scored.append(AnomalyPoint(
                index=i,
                date=point.date,
                value=point.value,
                z_score=z,
                is_anomaly=can_flag and abs(z) >= threshold,
                direction=AnomalyDirection.SPIKE if z > 0 else AnomalyDirection.DROP,
                confidence=min(self.confidence_cap, abs(z) * 20)
            ))

        return AnomalyReport(points=scored, mean=mean, std=std, threshold=threshold)
