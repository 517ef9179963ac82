"""Tests for forecast models and the forecaster facade."""

from datetime import date, timedelta

import numpy as np
import pytest

from pulse.analytics.base_models import Forecast, ForecastPrediction, ModelKind
from pulse.analytics.forecasting import (
    ArimaModel,
    CallableModel,
    DriftModel,
    EnsembleModel,
    ExponentialSmoothingModel,
    ForecastModel,
    HoltWintersModel,
    LinearRegressionModel,
    NaiveModel,
    TimeSeriesForecaster,
    build_model
)
from pulse.core.exceptions import ForecastError, InsufficientDataError


class ExplodingModel(ForecastModel):
    name = "exploding"

    def _fit_predict(self, values, periods):
        return values, np.full(periods, np.inf), {}


class MisconfiguredModel(ForecastModel):
    name = "misconfigured"

    def _fit_predict(self, values, periods):
        return {}["level"], None, {}


class TestForecastModelBase:
    def test_dates_follow_last_observation(self, week_series):
        forecast = LinearRegressionModel().forecast(week_series, 2)
        assert [p.date for p in forecast.predictions] == [date(2024, 1, 8), date(2024, 1, 9)]

    def test_bounds_contain_prediction(self, week_series):
        forecast = LinearRegressionModel().forecast(week_series, 2)
        for p in forecast.predictions:
            assert p.upper_bound >= p.predicted >= p.lower_bound

    def test_confidence_non_increasing(self, linear_series):
        forecast = DriftModel().forecast(linear_series[:20], 10)
        confidences = [p.confidence for p in forecast.predictions]
        assert confidences == sorted(confidences, reverse=True)

    def test_weekly_spacing_is_inferred(self, make_series):
        series = make_series([1, 2, 3, 4], step_days=7)
        forecast = NaiveModel().forecast(series, 1)
        assert forecast.predictions[0].date == series[-1].date + timedelta(days=7)
        assert forecast.parameters['step_days'] == 7

    def test_unsorted_history_is_sorted(self, make_series):
        series = make_series([1, 2, 3])
        forecast = NaiveModel().forecast(list(reversed(series)), 1)
        assert forecast.predictions[0].predicted == 3

    def test_empty_history_raises(self):
        with pytest.raises(InsufficientDataError):
            LinearRegressionModel().forecast([], 3)

    def test_too_short_history_raises(self, make_series):
        with pytest.raises(InsufficientDataError):
            DriftModel().forecast(make_series([5]), 3)

    def test_non_finite_output_raises(self, week_series):
        with pytest.raises(ForecastError):
            ExplodingModel().forecast(week_series, 2)

    def test_unexpected_error_is_wrapped(self, week_series):
        with pytest.raises(ForecastError) as exc_info:
            MisconfiguredModel().forecast(week_series, 2)
        assert isinstance(exc_info.value.__cause__, KeyError)
        assert exc_info.value.details == {'model': 'misconfigured'}

    def test_callable_type_error_is_wrapped(self, week_series):
        def wrong_signature(history):
            return None

        with pytest.raises(ForecastError) as exc_info:
            CallableModel(wrong_signature, name="wrong").forecast(week_series, 2)
        assert isinstance(exc_info.value.__cause__, TypeError)

    def test_flat_residuals_fall_back_to_percentage_band(self, make_series):
        forecast = LinearRegressionModel().forecast(make_series([2, 4, 6, 8]), 1)
        p = forecast.predictions[0]
        assert p.predicted == pytest.approx(10.0)
        assert p.upper_bound == pytest.approx(11.5)
        assert p.lower_bound == pytest.approx(8.5)


class TestBuiltInModels:
    def test_linear_extrapolates_trend(self, linear_series):
        forecast = LinearRegressionModel().forecast(linear_series, 3)
        assert forecast.values == pytest.approx([187.0, 190.0, 193.0])
        assert forecast.parameters['slope'] == pytest.approx(3.0)
        assert forecast.accuracy.rmse == pytest.approx(0.0, abs=1e-9)
        assert forecast.model == ModelKind.LINEAR_REGRESSION

    def test_linear_single_point_is_low_confidence(self, make_series):
        forecast = LinearRegressionModel().forecast(make_series([42]), 2)
        assert forecast.values == [0.0, 0.0]
        assert forecast.predictions[0].confidence == 10.0

    def test_naive_repeats_last_value(self, week_series):
        assert NaiveModel().forecast(week_series, 3).values == [140.0, 140.0, 140.0]

    def test_drift_extends_average_step(self, make_series):
        forecast = DriftModel().forecast(make_series([10, 12, 14, 16]), 2)
        assert forecast.values == pytest.approx([18.0, 20.0])

    def test_exponential_smoothing_is_flat(self, week_series):
        forecast = ExponentialSmoothingModel(alpha=0.3).forecast(week_series, 3)
        assert len(set(round(v, 9) for v in forecast.values)) == 1
        assert forecast.model == ModelKind.EXPONENTIAL_SMOOTHING

    def test_holt_winters_needs_two_cycles(self, make_series):
        with pytest.raises(InsufficientDataError):
            HoltWintersModel(seasonal_periods=7).forecast(make_series(range(13)), 3)

    def test_holt_winters_follows_weekly_pattern(self, weekly_pattern_series):
        forecast = HoltWintersModel(seasonal_periods=7).forecast(weekly_pattern_series, 7)
        assert len(forecast.predictions) == 7
        values = forecast.values
        # Weekend dip in the profile carries into the forecast
        assert values[5] < values[2]

    def test_arima_produces_finite_forecast(self, make_series):
        rng = np.random.default_rng(3)
        series = make_series(100 + np.cumsum(rng.normal(1, 2, 40)))
        forecast = ArimaModel().forecast(series, 5)
        assert len(forecast.predictions) == 5
        assert all(np.isfinite(forecast.values))
        assert forecast.accuracy.aic is not None

    def test_ensemble_weights_follow_in_sample_error(self, make_series):
        # Trend with alternating +/-2 noise: OLS misses by 2, drift by 4
        series = make_series([3 * x + 7 + (2 if x % 2 == 0 else -2) for x in range(30)])
        forecast = EnsembleModel().forecast(series, 3)
        weights = forecast.parameters['weights']
        assert sum(weights.values()) == pytest.approx(1.0)
        assert weights['linear_regression'] > weights['drift'] > 0
        assert max(weights, key=weights.get) == 'linear_regression'

    def test_ensemble_skips_failing_members(self, week_series):
        ensemble = EnsembleModel(members=[ExplodingModel(), NaiveModel()])
        forecast = ensemble.forecast(week_series, 2)
        assert list(forecast.parameters['weights']) == ['naive']
        assert forecast.values == pytest.approx([140.0, 140.0])

    def test_ensemble_all_failing_raises(self, week_series):
        with pytest.raises(ForecastError):
            EnsembleModel(members=[ExplodingModel()]).forecast(week_series, 2)

    def test_callable_model_adapter(self, week_series):
        def flat(history, periods):
            last = history[-1]
            return Forecast(
                predictions=[
                    ForecastPrediction(
                        date=last.date + timedelta(days=h),
                        predicted=last.value,
                        confidence=50,
                        upper_bound=last.value,
                        lower_bound=last.value
                    )
                    for h in range(1, periods + 1)
                ],
                model=ModelKind.CUSTOM
            )

        model = CallableModel(flat, name="flat")
        assert model.name == "flat"
        assert model.forecast(week_series, 2).values == [140.0, 140.0]

    def test_build_model_rejects_unknown(self):
        with pytest.raises(ValueError):
            build_model("prophet")


class TestForecastPrediction:
    def test_interval_must_contain_prediction(self):
        with pytest.raises(ValueError):
            ForecastPrediction(
                date=date(2024, 1, 1), predicted=10, confidence=50, upper_bound=9, lower_bound=8
            )


class TestTimeSeriesForecaster:
    def test_method_choice(self):
        forecaster = TimeSeriesForecaster(seasonal_period=7)
        assert forecaster._choose_method(5) == 'linear'
        assert forecaster._choose_method(10) == 'arima'
        assert forecaster._choose_method(14) == 'holt_winters'

    def test_short_series_two_step_forecast(self, week_series):
        forecast = TimeSeriesForecaster().forecast(week_series, 2)
        assert [p.date for p in forecast.predictions] == [date(2024, 1, 8), date(2024, 1, 9)]
        for p in forecast.predictions:
            assert p.upper_bound >= p.predicted >= p.lower_bound

    def test_empty_series_raises(self):
        with pytest.raises(InsufficientDataError):
            TimeSeriesForecaster().forecast([], 2)

    def test_failure_falls_back_to_linear(self, make_series):
        forecaster = TimeSeriesForecaster(method='drift')
        forecast = forecaster.forecast(make_series([5]), 2)
        assert forecast.model == ModelKind.LINEAR_REGRESSION
        assert forecast.parameters['fallback_from'] == 'drift'

    def test_unexpected_model_error_falls_back_to_linear(self, monkeypatch, linear_series):
        monkeypatch.setattr(
            'pulse.analytics.forecasting.build_model',
            lambda method, seasonal_period=7: MisconfiguredModel()
        )
        forecast = TimeSeriesForecaster(method='arima').forecast(linear_series, 3)
        assert forecast.model == ModelKind.LINEAR_REGRESSION
        assert forecast.parameters['fallback_from'] == 'custom'
        assert forecast.values == pytest.approx([187, 190, 193])

    def test_ensemble_skips_member_with_unexpected_error(self, linear_series):
        forecast = EnsembleModel([MisconfiguredModel(), LinearRegressionModel()]).forecast(linear_series, 2)
        assert forecast.values == pytest.approx([187, 190])
