"""Insight generator - turns forecasts and detector output into ranked insights."""

import re
from datetime import date, timedelta
from typing import List, Mapping, Optional, Sequence

import numpy as np

from ..core.config import Settings, get_settings
from ..core.exceptions import ForecastError, InsufficientDataError, NoValidModelError
from ..models.series_models import TimeSeriesPoint, to_number
from .anomaly_detection import AnomalyDetector
from .base_models import (
    AnomalyDirection,
    Forecast,
    Insight,
    InsightCategory,
    InsightImpact,
    ModelKind,
    PerformanceForecast,
    PerformanceForecastPoint,
    TrendDirection
)
from .forecasting import ForecastModel, TimeSeriesForecaster
from .validation import ModelValidator


# Month groups (0 = January) and the opportunity each one suggests
CALENDAR_OPPORTUNITIES = [
    {
        'months': (11, 0, 1),
        'title': 'End-of-Year Content Surge Opportunity',
        'description': 'Historical data suggests increased content engagement during year-end period.',
        'recommendations': [
            'Prepare holiday-themed content',
            'Plan year-end campaigns',
            'Schedule content in advance'
        ]
    },
    {
        'months': (2, 3, 4),
        'title': 'Spring Growth Pattern Expected',
        'description': 'Business metrics typically show improvement during spring months.',
        'recommendations': [
            'Launch new content initiatives',
            'Increase marketing efforts',
            'Prepare for growth phase'
        ]
    },
    {
        'months': (5, 6, 7),
        'title': 'Summer Engagement Shift Anticipated',
        'description': 'User behavior patterns typically change during summer months.',
        'recommendations': [
            'Adjust content schedule for summer',
            'Consider mobile-first content',
            'Plan vacation-mode operations'
        ]
    },
    {
        'months': (8, 9, 10),
        'title': 'Back-to-Business Momentum Building',
        'description': 'Fall period shows renewed business activity and engagement.',
        'recommendations': [
            'Prepare for increased activity',
            'Launch major content initiatives',
            'Capitalize on renewed focus'
        ]
    }
]


def _slug(text: str) -> str:
    return re.sub(r'[^a-z0-9]+', '-', text.lower()).strip('-') or 'metric'


class InsightGenerator:
    """
    Builds ranked insights from metric series.

    Each category applies its own thresholds (see Settings); insights are
    ranked by confidence, highest first.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        forecaster: Optional[TimeSeriesForecaster] = None,
        detector: Optional[AnomalyDetector] = None,
        candidates: Optional[Sequence[ForecastModel]] = None,
        validator: Optional[ModelValidator] = None
    ):
        """
        Initialize generator.

        Args:
            settings: Thresholds (defaults to the cached settings)
            forecaster: Forecaster for the performance outlook
            detector: Trend/seasonality/anomaly detector
            candidates: Models ranked by information criteria for the outlook;
                the forecaster is used when empty or when none of them is valid
            validator: Ranks the candidates
        """
        self.settings = settings or get_settings()
        self.forecaster = forecaster or TimeSeriesForecaster(
            seasonal_period=self.settings.seasonal_period,
            verbose=self.settings.verbose
        )
        self.detector = detector or AnomalyDetector(
            threshold=self.settings.default_z_threshold,
            min_samples=self.settings.anomaly_min_samples,
            confidence_cap=self.settings.anomaly_confidence_cap
        )
        self.candidates = list(candidates or [])
        self.validator = validator or ModelValidator(verbose=self.settings.verbose)

    def generate_insights(
        self,
        performance: Optional[Sequence[TimeSeriesPoint]] = None,
        engagement: Optional[Sequence[TimeSeriesPoint]] = None,
        metrics: Optional[Mapping[str, Sequence[TimeSeriesPoint]]] = None,
        segments: Optional[Mapping[str, Sequence[float]]] = None,
        as_of: Optional[date] = None,
        limit: Optional[int] = None
    ) -> List[Insight]:
        """
        Generate insights from whatever inputs are available.

        Args:
            performance: Content performance series (trend and forecast insights)
            engagement: Daily engagement series (weekly pattern insight)
            metrics: Named business metric series (anomaly insights)
            segments: Scores per segment, e.g. per content type (gap insight)
            as_of: Reference date for ids and the calendar outlook (default today)
            limit: Maximum number of insights (default 8)

        Returns:
            Insights ordered by confidence, highest first
        """
        as_of = as_of or date.today()
        limit = self.settings.max_insights if limit is None else limit

        insights: List[Insight] = []
        if performance:
            insights.extend(self.trend_insights(performance, as_of))
            insights.extend(self.forecast_insights(performance, as_of))
        if segments:
            insights.extend(self.segment_insights(segments, as_of))
        if engagement:
            insights.extend(self.engagement_insights(engagement, as_of))
        if metrics:
            insights.extend(self.anomaly_insights(metrics))
        insights.extend(self.calendar_insights(as_of))

        ranked = sorted(insights, key=lambda i: i.confidence, reverse=True)
        if self.settings.verbose:
            print(f"[INSIGHTS] {len(ranked)} generated, returning {min(limit, len(ranked))}")
        return ranked[:max(0, limit)]

    def trend_insights(self, series: Sequence[TimeSeriesPoint], as_of: date) -> List[Insight]:
        """Trend insight when the fit is confident and the monthly change is material."""
        if len(series) < self.settings.min_trend_points:
            return []

        trend = self.detector.analyze_trend(series)
        monthly_change = abs(trend.slope * 30)
        if (
            trend.direction == TrendDirection.STABLE
            or trend.confidence <= self.settings.min_trend_confidence
            or monthly_change <= self.settings.min_trend_change
        ):
            return []

        rising = trend.direction == TrendDirection.INCREASING
        direction = 'upward' if rising else 'downward'

        return [Insight(
            id=f"performance-trend-{as_of.isoformat()}",
            title=f"{direction.capitalize()} Performance Trend Detected",
            description=(
                f"Content engagement shows a {direction} trend with {trend.confidence:.0f}% confidence. "
                f"Current trajectory suggests {monthly_change:.0f} point change over next month."
            ),
            confidence=round(trend.confidence),
            impact=InsightImpact.POSITIVE if rising else InsightImpact.NEGATIVE,
            category=InsightCategory.TREND,
            timeframe="30 days",
            recommendations=[
                'Maintain current content strategy',
                'Consider increasing publishing frequency',
                'Analyze top-performing content for replication'
            ] if rising else [
                'Review and optimize content strategy',
                'Focus on high-engagement content types',
                'Analyze competitor performance for insights'
            ],
            data_points=trend.data_points,
            model=ModelKind.LINEAR_REGRESSION
        )]

    def _outlook(self, series: Sequence[TimeSeriesPoint], periods: int) -> Forecast:
        """Forecast from the best-ranked candidate, else from the forecaster."""
        if self.candidates:
            try:
                comparison = self.validator.select_best_model(series, self.candidates, periods)
            except (NoValidModelError, InsufficientDataError) as e:
                if self.settings.verbose:
                    print(f"[WARN] Model selection failed ({e.message}), using the forecaster")
            else:
                return comparison.models[0].forecast

        return self.forecaster.forecast(series, periods)

    def forecast_insights(self, series: Sequence[TimeSeriesPoint], as_of: date) -> List[Insight]:
        """Outlook insight when the projected mean moves enough against the recent mean."""
        periods = self.settings.forecast_periods
        if len(series) < self.settings.min_forecast_points:
            return []

        try:
            forecast = self._outlook(series, periods)
        except (ForecastError, InsufficientDataError):
            return []

        ordered = sorted(series, key=lambda p: p.date)
        recent = float(np.mean([p.value for p in ordered[-periods:]]))
        projected = float(np.mean(forecast.values))
        if recent == 0:
            return []

        change_pct = (projected - recent) / abs(recent) * 100
        if abs(change_pct) < self.settings.min_forecast_change_pct:
            return []

        rising = change_pct > 0
        horizon_days = periods * forecast.parameters.get('step_days', 1)

        return [Insight(
            id=f"performance-forecast-{as_of.isoformat()}",
            title=f"Performance Projected to {'Rise' if rising else 'Fall'}",
            description=(
                f"The {forecast.model.value.replace('_', ' ')} forecast projects an average of "
                f"{projected:.0f} over the next {periods} periods, "
                f"{abs(change_pct):.0f}% {'above' if rising else 'below'} the recent average of {recent:.0f}."
            ),
            confidence=round(float(np.mean([p.confidence for p in forecast.predictions])), 2),
            impact=InsightImpact.POSITIVE if rising else InsightImpact.NEGATIVE,
            category=InsightCategory.PERFORMANCE,
            timeframe=f"{horizon_days} days",
            recommendations=[
                'Plan capacity for the expected increase',
                'Double down on the content driving growth',
                'Track actuals against the forecast weekly'
            ] if rising else [
                'Investigate drivers behind the projected decline',
                'Refresh underperforming content',
                'Track actuals against the forecast weekly'
            ],
            data_points=len(series),
            model=forecast.model
        )]

    def segment_insights(self, segments: Mapping[str, Sequence[float]], as_of: date) -> List[Insight]:
        """Gap insight between the best and worst segment averages."""
        averages = []
        for name, scores in segments.items():
            numbers = [n for n in (to_number(s) for s in scores) if n is not None]
            if len(numbers) >= self.settings.min_segment_samples:
                averages.append((name, float(np.mean(numbers)), len(numbers)))

        if len(averages) < 2:
            return []

        averages.sort(key=lambda a: a[1], reverse=True)
        best, worst = averages[0], averages[-1]
        if best[1] - worst[1] <= self.settings.min_segment_gap:
            return []

        return [Insight(
            id=f"segment-performance-{as_of.isoformat()}",
            title='Content Type Performance Gap Identified',
            description=(
                f"{best[0]} content significantly outperforms {worst[0]} "
                f"({best[1]:.0f} vs {worst[1]:.0f} avg score). "
                f"Consider shifting focus to high-performing content types."
            ),
            confidence=85,
            impact=InsightImpact.POSITIVE,
            category=InsightCategory.OPPORTUNITY,
            timeframe="14 days",
            recommendations=[
                f"Increase production of {best[0]} content",
                f"Analyze what makes {best[0]} content successful",
                f"Consider reducing or improving {worst[0]} content strategy"
            ],
            data_points=best[2] + worst[2],
            model=ModelKind.SEGMENT_ANALYSIS
        )]

    def engagement_insights(self, series: Sequence[TimeSeriesPoint], as_of: date) -> List[Insight]:
        """Weekly pattern insight when seasonal strength clears the threshold."""
        seasonality = self.detector.detect_seasonality(series, self.settings.seasonal_period)
        if seasonality.strength <= self.settings.min_seasonal_strength:
            return []

        peak = f" Engagement peaks on {seasonality.peak_weekday}." if seasonality.peak_weekday else ""

        return [Insight(
            id=f"engagement-pattern-{as_of.isoformat()}",
            title='Weekly Engagement Pattern Detected',
            description=(
                f"User engagement shows {seasonality.strength:.0f}% seasonal variation.{peak} "
                f"Optimize content scheduling to leverage peak engagement periods."
            ),
            confidence=min(90.0, seasonality.strength + 20),
            impact=InsightImpact.POSITIVE,
            category=InsightCategory.ENGAGEMENT,
            timeframe="7 days",
            recommendations=[
                'Schedule high-priority content during peak engagement times',
                'Analyze weekly patterns for optimal posting schedule',
                'Consider audience timezone for content delivery'
            ],
            data_points=seasonality.data_points,
            model=ModelKind.SEASONAL_DECOMPOSITION
        )]

    def anomaly_insights(self, metrics: Mapping[str, Sequence[TimeSeriesPoint]]) -> List[Insight]:
        """One insight per metric for the latest of its most recent anomalies."""
        insights = []
        for name, series in metrics.items():
            if len(series) < self.settings.min_anomaly_points:
                continue

            report = self.detector.detect_anomalies(series, self.settings.default_z_threshold)
            recent = report.recent(self.settings.recent_anomaly_window)
            if not recent:
                continue

            latest = recent[-1]
            spike = latest.direction == AnomalyDirection.SPIKE
            direction = latest.direction.value

            insights.append(Insight(
                id=f"anomaly-{_slug(name)}-{latest.date.isoformat()}",
                title=f"{name} Anomaly Detected",
                description=(
                    f"Unusual {direction} detected in {name} on {latest.date.isoformat()}. "
                    f"Value: {latest.value:.0f} (Z-score: {latest.z_score:.2f})."
                ),
                confidence=round(latest.confidence, 2),
                impact=InsightImpact.POSITIVE if spike else InsightImpact.NEGATIVE,
                category=InsightCategory.ANOMALY,
                timeframe="7 days",
                recommendations=[
                    'Investigate factors contributing to positive spike',
                    'Document successful strategies for replication',
                    'Monitor if spike represents sustainable improvement'
                ] if spike else [
                    'Investigate root causes of performance drop',
                    'Implement corrective measures quickly',
                    'Monitor closely for pattern confirmation'
                ],
                data_points=len(series),
                model=ModelKind.ANOMALY_DETECTION
            ))
        return insights

    def calendar_insights(self, as_of: date) -> List[Insight]:
        """Pattern-based outlook for the current or next month (no data behind it)."""
        month = as_of.month - 1
        for opportunity in CALENDAR_OPPORTUNITIES:
            if month in opportunity['months'] or (month + 1) % 12 in opportunity['months']:
                return [Insight(
                    id=f"seasonal-{month}-{as_of.isoformat()}",
                    title=opportunity['title'],
                    description=opportunity['description'],
                    confidence=75,
                    impact=InsightImpact.POSITIVE,
                    category=InsightCategory.OPPORTUNITY,
                    timeframe="60 days",
                    recommendations=list(opportunity['recommendations']),
                    data_points=0,
                    model=ModelKind.SEASONAL_PATTERN
                )]
        return []

    def build_performance_forecast(
        self,
        series: Sequence[TimeSeriesPoint],
        periods: Optional[int] = None,
        as_of: Optional[date] = None,
        seed: Optional[int] = None
    ) -> PerformanceForecast:
        """
        History plus forecast rows for the performance chart.

        Falls back to the synthetic baseline when there are fewer than
        `min_forecast_points` observations or the forecast fails.

        Args:
            series: Observed performance series
            periods: Forecast steps (default 6)
            as_of: Anchor date for the synthetic baseline (default today)
            seed: Seed for the synthetic noise

        Returns:
            PerformanceForecast; `is_synthetic` marks the baseline
        """
        periods = periods or self.settings.forecast_periods

        if len(series) >= self.settings.min_forecast_points:
            try:
                forecast = self._outlook(series, periods)
            except (ForecastError, InsufficientDataError) as e:
                if self.settings.verbose:
                    print(f"[WARN] Performance forecast failed ({e.message}), using synthetic baseline")
            else:
                history = [
                    PerformanceForecastPoint(date=p.date, actual=p.value)
                    for p in sorted(series, key=lambda p: p.date)
                ]
                future = [
                    PerformanceForecastPoint(
                        date=p.date,
                        predicted=p.predicted,
                        confidence=p.confidence,
                        upper_bound=p.upper_bound,
                        lower_bound=p.lower_bound
                    )
                    for p in forecast.predictions
                ]
                return PerformanceForecast(points=history + future, model=forecast.model)

        return self.synthetic_baseline(periods, as_of or date.today(), seed)

    def synthetic_baseline(
        self,
        periods: int = 6,
        as_of: Optional[date] = None,
        seed: Optional[int] = None
    ) -> PerformanceForecast:
        """
        Deterministic-shape placeholder forecast.

        30 days of history: 800 + 2i + 100 * weekday multiplier (0.7 on
        weekends) + uniform noise in [-25, 25], floored at 0. Then weekly
        predictions 850 + 25i with confidence max(60, 85 - 3i) and a +/-15%
        band.
        """
        as_of = as_of or date.today()
        rng = np.random.default_rng(seed)
        start = as_of - timedelta(days=30)

        points = []
        for i in range(30):
            day = start + timedelta(days=i)
            multiplier = 0.7 if day.weekday() >= 5 else 1.0
            value = max(0.0, 800 + i * 2 + multiplier * 100 + rng.uniform(-25, 25))
            points.append(PerformanceForecastPoint(date=day, actual=float(round(value))))

        for i in range(1, periods + 1):
            predicted = 850.0 + i * 25
            points.append(PerformanceForecastPoint(
                date=as_of + timedelta(days=7 * i),
                predicted=predicted,
                confidence=max(60.0, 85.0 - 3 * i),
                upper_bound=predicted * 1.15,
                lower_bound=predicted * 0.85
            ))

        return PerformanceForecast(points=points, model=ModelKind.SYNTHETIC_BASELINE, is_synthetic=True)
