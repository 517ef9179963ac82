"""Tests for the insight generator and performance forecast."""

from datetime import date, timedelta

import pytest

from pulse.analytics.base_models import InsightCategory, InsightImpact, ModelKind
from pulse.analytics.forecasting import (
    CallableModel,
    LinearRegressionModel,
    NaiveModel,
    TimeSeriesForecaster
)
from pulse.analytics.synthesizer import InsightGenerator

AS_OF = date(2024, 6, 15)


@pytest.fixture
def generator():
    return InsightGenerator(forecaster=TimeSeriesForecaster(method='linear'))


@pytest.fixture
def noisy_rise(make_series):
    """10x + 10 with alternating +/-3 noise over 20 days."""
    return make_series([10 * x + 10 + (3 if x % 2 == 0 else -3) for x in range(20)])


@pytest.fixture
def steep_series(make_series):
    """10x + 10 over 20 days."""
    return make_series([10 * x + 10 for x in range(20)])


class TestTrendInsights:
    def test_confident_upward_trend(self, generator, steep_series):
        insights = generator.trend_insights(steep_series, AS_OF)
        assert len(insights) == 1
        insight = insights[0]
        assert insight.id == 'performance-trend-2024-06-15'
        assert insight.category == InsightCategory.TREND
        assert insight.impact == InsightImpact.POSITIVE
        assert insight.confidence == 95
        assert 'upward' in insight.description

    def test_downward_trend_is_negative(self, generator, make_series):
        insights = generator.trend_insights(make_series([500 - 10 * x for x in range(20)]), AS_OF)
        assert insights[0].impact == InsightImpact.NEGATIVE

    def test_flat_series_has_no_trend(self, generator, make_series):
        assert generator.trend_insights(make_series([50] * 20), AS_OF) == []

    def test_too_few_points(self, generator, make_series):
        assert generator.trend_insights(make_series([1, 50, 100]), AS_OF) == []


class TestForecastInsights:
    def test_projected_rise(self, generator, steep_series):
        insights = generator.forecast_insights(steep_series, AS_OF)
        assert len(insights) == 1
        assert insights[0].category == InsightCategory.PERFORMANCE
        assert insights[0].impact == InsightImpact.POSITIVE
        assert insights[0].model == ModelKind.LINEAR_REGRESSION

    def test_flat_projection_is_skipped(self, generator, make_series):
        assert generator.forecast_insights(make_series([100] * 20), AS_OF) == []

    def test_candidates_ranked_before_outlook(self, noisy_rise):
        generator = InsightGenerator(
            forecaster=TimeSeriesForecaster(method='naive'),
            candidates=[NaiveModel(), LinearRegressionModel()]
        )
        insights = generator.forecast_insights(noisy_rise, AS_OF)
        assert len(insights) == 1
        assert insights[0].model == ModelKind.LINEAR_REGRESSION
        assert insights[0].impact == InsightImpact.POSITIVE

    def test_forecaster_used_without_candidates(self, noisy_rise):
        generator = InsightGenerator(forecaster=TimeSeriesForecaster(method='naive'))
        assert generator.forecast_insights(noisy_rise, AS_OF)[0].model == ModelKind.NAIVE

    def test_no_valid_candidate_uses_forecaster(self, noisy_rise):
        def broken(history, periods):
            raise RuntimeError("no fit")

        generator = InsightGenerator(
            forecaster=TimeSeriesForecaster(method='naive'),
            candidates=[CallableModel(broken, name="broken")]
        )
        assert generator.forecast_insights(noisy_rise, AS_OF)[0].model == ModelKind.NAIVE


class TestSegmentInsights:
    def test_gap_between_best_and_worst(self, generator):
        segments = {
            'video': [90, 85, 95],
            'blog': [40, 50, 45],
            'podcast': [100],
        }
        insights = generator.segment_insights(segments, AS_OF)
        assert len(insights) == 1
        insight = insights[0]
        assert insight.category == InsightCategory.OPPORTUNITY
        assert insight.description.startswith('video content significantly outperforms blog')
        assert insight.data_points == 6
        assert insight.confidence == 85

    def test_small_gap_is_ignored(self, generator):
        segments = {'video': [50, 52, 54], 'blog': [48, 50, 46]}
        assert generator.segment_insights(segments, AS_OF) == []


class TestEngagementInsights:
    def test_weekly_pattern(self, generator, weekly_pattern_series):
        insights = generator.engagement_insights(weekly_pattern_series, AS_OF)
        assert len(insights) == 1
        assert insights[0].confidence == 90
        assert 'Wednesday' in insights[0].description

    def test_short_series_has_no_pattern(self, generator, make_series):
        assert generator.engagement_insights(make_series(range(10)), AS_OF) == []


class TestAnomalyInsights:
    def test_latest_spike_reported(self, generator, make_series):
        series = make_series([10] * 29 + [100])
        insights = generator.anomaly_insights({'Page Views': series})
        assert len(insights) == 1
        insight = insights[0]
        assert insight.id == f"anomaly-page-views-{series[-1].date.isoformat()}"
        assert insight.impact == InsightImpact.POSITIVE
        assert insight.category == InsightCategory.ANOMALY
        assert insight.data_points == 30

    def test_drop_is_negative(self, generator, make_series):
        insights = generator.anomaly_insights({'revenue': make_series([100] * 29 + [5])})
        assert insights[0].impact == InsightImpact.NEGATIVE
        assert 'drop' in insights[0].description

    def test_short_metric_skipped(self, generator, make_series):
        assert generator.anomaly_insights({'x': make_series([1, 1, 1, 50])}) == []


class TestCalendarInsights:
    @pytest.mark.parametrize("as_of,title", [
        (date(2024, 12, 10), 'End-of-Year Content Surge Opportunity'),
        (date(2024, 4, 10), 'Spring Growth Pattern Expected'),
        (date(2024, 7, 1), 'Summer Engagement Shift Anticipated'),
        (date(2024, 10, 1), 'Back-to-Business Momentum Building'),
    ])
    def test_month_selects_opportunity(self, generator, as_of, title):
        insights = generator.calendar_insights(as_of)
        assert [i.title for i in insights] == [title]
        assert insights[0].model == ModelKind.SEASONAL_PATTERN


class TestGenerateInsights:
    def test_ranked_by_confidence(self, generator, steep_series, weekly_pattern_series, make_series):
        insights = generator.generate_insights(
            performance=steep_series,
            engagement=weekly_pattern_series,
            metrics={'visits': make_series([10] * 29 + [100])},
            segments={'video': [90, 85, 95], 'blog': [40, 50, 45]},
            as_of=AS_OF
        )
        confidences = [i.confidence for i in insights]
        assert confidences == sorted(confidences, reverse=True)
        categories = {i.category for i in insights}
        assert {InsightCategory.TREND, InsightCategory.ENGAGEMENT, InsightCategory.ANOMALY} <= categories

    def test_limit(self, generator, steep_series):
        insights = generator.generate_insights(performance=steep_series, as_of=AS_OF, limit=1)
        assert len(insights) == 1
        assert insights[0].category == InsightCategory.TREND

    def test_no_data_still_has_calendar_outlook(self, generator):
        insights = generator.generate_insights(as_of=AS_OF)
        assert [i.category for i in insights] == [InsightCategory.OPPORTUNITY]

    def test_ids_are_stable(self, generator, steep_series):
        first = generator.generate_insights(performance=steep_series, as_of=AS_OF)
        second = generator.generate_insights(performance=steep_series, as_of=AS_OF)
        assert [i.id for i in first] == [i.id for i in second]


class TestPerformanceForecast:
    def test_synthetic_baseline_shape(self, generator):
        result = generator.synthetic_baseline(6, AS_OF, seed=42)
        assert result.is_synthetic
        assert result.model == ModelKind.SYNTHETIC_BASELINE

        history = result.history
        assert len(history) == 30
        assert history[0].date == AS_OF - timedelta(days=30)
        assert all(845 <= p.actual <= 1010 for p in history)

        predictions = result.predictions
        assert [p.date for p in predictions] == [AS_OF + timedelta(days=7 * i) for i in range(1, 7)]
        assert [p.predicted for p in predictions] == [875, 900, 925, 950, 975, 1000]
        assert [p.confidence for p in predictions] == [82, 79, 76, 73, 70, 67]
        for p in predictions:
            assert p.upper_bound == pytest.approx(p.predicted * 1.15)
            assert p.lower_bound == pytest.approx(p.predicted * 0.85)

    def test_confidence_floor(self, generator):
        predictions = generator.synthetic_baseline(12, AS_OF, seed=1).predictions
        assert predictions[-1].confidence == 60

    def test_seeded_baseline_is_reproducible(self, generator):
        first = generator.synthetic_baseline(6, AS_OF, seed=7)
        second = generator.synthetic_baseline(6, AS_OF, seed=7)
        assert first == second

    def test_short_history_uses_baseline(self, generator, make_series):
        result = generator.build_performance_forecast(make_series([1, 2, 3]), as_of=AS_OF, seed=3)
        assert result.is_synthetic

    def test_data_driven_forecast(self, generator, steep_series):
        result = generator.build_performance_forecast(steep_series, periods=4)
        assert not result.is_synthetic
        assert result.model == ModelKind.LINEAR_REGRESSION
        assert [p.actual for p in result.history] == [p.value for p in steep_series]
        assert [p.predicted for p in result.predictions] == pytest.approx([210, 220, 230, 240])

    def test_forecast_uses_best_candidate(self, noisy_rise):
        generator = InsightGenerator(candidates=[NaiveModel(), LinearRegressionModel()])
        result = generator.build_performance_forecast(noisy_rise, periods=4)
        assert not result.is_synthetic
        assert result.model == ModelKind.LINEAR_REGRESSION
        assert len(result.predictions) == 4
