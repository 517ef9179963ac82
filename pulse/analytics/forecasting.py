"""Time series forecasting with confidence intervals and accuracy diagnostics."""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import warnings
warnings.filterwarnings('ignore')

from ..core.config import get_settings
from ..core.exceptions import AnalyticsError, ForecastError, InsufficientDataError
from ..models.series_models import TimeSeriesPoint
from .base_models import Forecast, ForecastPrediction, ModelKind
from .metrics import accuracy_metrics, linear_regression, residual_diagnostics

# Two-sided 95% normal quantile
Z_95 = 1.96

FitResult = Tuple[np.ndarray, np.ndarray, Dict[str, Any]]


def infer_step_days(series: Sequence[TimeSeriesPoint]) -> int:
    """Median spacing between consecutive dates, at least one day."""
    if len(series) < 2:
        return 1
    gaps = [(b.date - a.date).days for a, b in zip(series, series[1:])]
    step = int(round(float(np.median(gaps))))
    return step if step > 0 else 1


class ForecastModel(ABC):
    """
    Base class for pluggable forecast models.

    Subclasses implement `_fit_predict(values, periods)` returning in-sample
    fitted values (NaN where the model has none), the forecast values and the
    fitted parameters. The base class turns that into a `Forecast` with dated
    predictions, intervals and diagnostics.
    """

    name: str = "model"
    kind: ModelKind = ModelKind.CUSTOM
    n_params: int = 1
    min_history: int = 1

    @abstractmethod
    def _fit_predict(self, values: np.ndarray, periods: int) -> FitResult:
        ...

    def fit_predict(self, values: np.ndarray, periods: int) -> FitResult:
        """Run the model on raw values, wrapping any non-engine failure in ForecastError."""
        values = np.asarray(values, dtype=float)
        if values.size < max(1, self.min_history):
            raise InsufficientDataError(
                f"{self.name} needs at least {self.min_history} points, got {values.size}",
                details={'model': self.name, 'points': int(values.size)}
            )

        try:
            fitted, forecast, params = self._fit_predict(values, periods)
        except AnalyticsError:
            raise
        except Exception as e:
            raise ForecastError(f"{self.name} failed: {e}", details={'model': self.name}) from e

        fitted = np.asarray(fitted, dtype=float)
        forecast = np.asarray(forecast, dtype=float)

        if forecast.size != periods or not np.all(np.isfinite(forecast)):
            raise ForecastError(
                f"{self.name} produced an invalid forecast",
                details={'model': self.name, 'expected': periods, 'received': int(forecast.size)}
            )
        return fitted, forecast, params

    def _base_confidence(self, values: np.ndarray, mape: float) -> float:
        return float(np.clip(100.0 - mape, 10.0, 95.0))

    def forecast(self, history: Sequence[TimeSeriesPoint], periods: int) -> Forecast:
        """
        Forecast `periods` steps after the last observation.

        Args:
            history: Observed series (sorted here by date)
            periods: Number of future steps

        Returns:
            Forecast whose confidence does not increase with the horizon

        Raises:
            InsufficientDataError: empty or too-short history
            ForecastError: the model could not fit or produced non-finite values
        """
        series = sorted(history, key=lambda p: p.date)
        if not series:
            raise InsufficientDataError("Cannot forecast an empty series")

        values = np.array([p.value for p in series], dtype=float)
        fitted, forecast, params = self.fit_predict(values, periods)

        in_sample = np.isfinite(fitted) if fitted.size == values.size else np.zeros(values.size, bool)
        residuals = values[in_sample] - fitted[in_sample]
        accuracy = accuracy_metrics(values[in_sample], fitted[in_sample], n_params=self.n_params)

        sigma = float(np.std(residuals, ddof=1)) if residuals.size > 1 else 0.0
        base = self._base_confidence(values, accuracy.mape)
        step = infer_step_days(series)
        last = series[-1].date

        predictions = []
        for h, predicted in enumerate(forecast, start=1):
            predicted = float(predicted)
            if sigma > 0 and np.isfinite(sigma):
                band = Z_95 * sigma * np.sqrt(h)
            else:
                band = abs(predicted) * 0.15
            predictions.append(ForecastPrediction(
                date=last + timedelta(days=step * h),
                predicted=predicted,
                confidence=round(base * 0.95 ** (h - 1), 2),
                upper_bound=predicted + band,
                lower_bound=predicted - band
            ))

        return Forecast(
            predictions=predictions,
            accuracy=accuracy,
            model=self.kind,
            parameters={**params, 'step_days': step},
            diagnostics=residual_diagnostics(residuals)
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class LinearRegressionModel(ForecastModel):
    """OLS trend over the point index."""

    name = "linear_regression"
    kind = ModelKind.LINEAR_REGRESSION
    n_params = 2

    def _fit_predict(self, values, periods):
        n = values.size
        xs = np.arange(n, dtype=float)
        slope, intercept = linear_regression(xs, values)
        fitted = slope * xs + intercept
        future = slope * np.arange(n, n + periods, dtype=float) + intercept
        return fitted, future, {'slope': slope, 'intercept': intercept}

    def _base_confidence(self, values, mape):
        # Degenerate fit on a single point
        if values.size < 2:
            return 10.0
        return super()._base_confidence(values, mape)


class NaiveModel(ForecastModel):
    """Repeats the last observed value."""

    name = "naive"
    kind = ModelKind.NAIVE
    n_params = 1

    def _fit_predict(self, values, periods):
        fitted = np.concatenate([[np.nan], values[:-1]])
        return fitted, np.full(periods, values[-1]), {'last_value': float(values[-1])}


class DriftModel(ForecastModel):
    """Last value plus the average historical step."""

    name = "drift"
    kind = ModelKind.DRIFT
    n_params = 1
    min_history = 2

    def _fit_predict(self, values, periods):
        drift = (values[-1] - values[0]) / (values.size - 1)
        fitted = np.concatenate([[np.nan], values[:-1] + drift])
        future = values[-1] + drift * np.arange(1, periods + 1)
        return fitted, future, {'drift': float(drift)}


class ExponentialSmoothingModel(ForecastModel):
    """Simple exponential smoothing with a fixed smoothing level."""

    name = "exponential_smoothing"
    kind = ModelKind.EXPONENTIAL_SMOOTHING
    n_params = 2
    min_history = 2

    def __init__(self, alpha: float = 0.3):
        self.alpha = alpha

    def _fit_predict(self, values, periods):
        from statsmodels.tsa.holtwinters import SimpleExpSmoothing

        model = SimpleExpSmoothing(
            values,
            initialization_method="known",
            initial_level=float(values[0])
        )
        fitted = model.fit(smoothing_level=self.alpha, optimized=False)
        return (
            np.asarray(fitted.fittedvalues),
            np.asarray(fitted.forecast(periods)),
            {'alpha': self.alpha, 'level': float(fitted.params['smoothing_level'])}
        )


class HoltWintersModel(ForecastModel):
    """Additive trend and seasonality (triple exponential smoothing)."""

    name = "holt_winters"
    kind = ModelKind.HOLT_WINTERS

    def __init__(self, seasonal_periods: int = 7):
        self.seasonal_periods = seasonal_periods
        self.n_params = 3 + seasonal_periods
        self.min_history = 2 * seasonal_periods

    def _fit_predict(self, values, periods):
        from statsmodels.tsa.holtwinters import ExponentialSmoothing

        model = ExponentialSmoothing(
            values,
            trend="add",
            seasonal="add",
            seasonal_periods=self.seasonal_periods,
            initialization_method="estimated"
        )
        fitted = model.fit()
        params = {
            'alpha': float(fitted.params.get('smoothing_level', np.nan)),
            'beta': float(fitted.params.get('smoothing_trend', np.nan)),
            'gamma': float(fitted.params.get('smoothing_seasonal', np.nan)),
            'seasonal_periods': self.seasonal_periods
        }
        return np.asarray(fitted.fittedvalues), np.asarray(fitted.forecast(periods)), params


class ArimaModel(ForecastModel):
    """ARIMA(p, d, q) via statsmodels."""

    name = "arima"
    kind = ModelKind.ARIMA

    def __init__(self, order: Tuple[int, int, int] = (1, 1, 1)):
        self.order = tuple(order)
        p, d, q = self.order
        self.n_params = p + q + 1
        self.min_history = max(10, p + d + q + 2)

    def _fit_predict(self, values, periods):
        from statsmodels.tsa.arima.model import ARIMA

        fitted = ARIMA(values, order=self.order).fit()
        in_sample = np.asarray(fitted.fittedvalues, dtype=float).copy()
        # Differenced models have no real fit for the first d points
        in_sample[:self.order[1]] = np.nan

        return in_sample, np.asarray(fitted.forecast(steps=periods)), {
            'order': list(self.order),
            'aic': float(fitted.aic),
            'bic': float(fitted.bic)
        }


class EnsembleModel(ForecastModel):
    """
    Weighted average of member models.

    Weights are inverse in-sample RMSE (plus 0.001), normalized. Members that
    fail are left out; if all fail the ensemble fails.
    """

    name = "ensemble"
    kind = ModelKind.ENSEMBLE

    def __init__(self, members: Optional[List[ForecastModel]] = None):
        self.members = members or [
            LinearRegressionModel(),
            ExponentialSmoothingModel(),
            DriftModel()
        ]
        self.n_params = max(m.n_params for m in self.members) + 1
        self.min_history = min(m.min_history for m in self.members)

    def _fit_predict(self, values, periods):
        results = []
        for member in self.members:
            if values.size < member.min_history:
                continue
            try:
                fitted, forecast, _ = member.fit_predict(values, periods)
            except (ForecastError, InsufficientDataError):
                continue

            mask = np.isfinite(fitted) if fitted.size == values.size else np.zeros(values.size, bool)
            if not mask.any():
                continue
            rmse = float(np.sqrt(np.mean((values[mask] - fitted[mask]) ** 2)))
            results.append((member.name, fitted, forecast, 1.0 / (rmse + 0.001)))

        if not results:
            raise ForecastError("All ensemble members failed", details={'model': self.name})

        total = sum(r[3] for r in results)
        weights = {name: weight / total for name, _, _, weight in results}

        forecast = sum(weights[name] * fc for name, _, fc, _ in results)

        stacked = np.vstack([fitted for _, fitted, _, _ in results])
        member_weights = np.array([weights[name] for name, _, _, _ in results])[:, None]
        finite = np.isfinite(stacked)
        weight_sum = (member_weights * finite).sum(axis=0)
        with np.errstate(invalid='ignore', divide='ignore'):
            fitted = (np.where(finite, stacked, 0.0) * member_weights).sum(axis=0) / weight_sum
        fitted[weight_sum == 0] = np.nan

        return fitted, forecast, {'weights': weights}


class CallableModel(ForecastModel):
    """Adapter for a plain `fn(history, periods) -> Forecast` callable."""

    def __init__(
        self,
        fn: Callable[[Sequence[TimeSeriesPoint], int], Forecast],
        name: str = "custom",
        min_history: int = 1
    ):
        self.fn = fn
        self.name = name
        self.min_history = min_history

    def _fit_predict(self, values, periods):
        raise ForecastError(f"{self.name} only forecasts dated series", details={'model': self.name})

    def forecast(self, history: Sequence[TimeSeriesPoint], periods: int) -> Forecast:
        series = sorted(history, key=lambda p: p.date)
        if len(series) < max(1, self.min_history):
            raise InsufficientDataError(
                f"{self.name} needs at least {self.min_history} points, got {len(series)}"
            )

        try:
            result = self.fn(series, periods)
        except AnalyticsError:
            raise
        except Exception as e:
            raise ForecastError(f"{self.name} failed: {e}", details={'model': self.name}) from e

        if not isinstance(result, Forecast):
            raise ForecastError(f"{self.name} did not return a Forecast", details={'model': self.name})
        if not all(np.isfinite(v) for v in result.values):
            raise ForecastError(f"{self.name} produced non-finite values", details={'model': self.name})
        return result


def build_model(method: str, seasonal_period: int = 7) -> ForecastModel:
    """Create a built-in model by name."""
    factories = {
        'linear': LinearRegressionModel,
        'linear_regression': LinearRegressionModel,
        'naive': NaiveModel,
        'drift': DriftModel,
        'exponential_smoothing': ExponentialSmoothingModel,
        'holt_winters': lambda: HoltWintersModel(seasonal_periods=seasonal_period),
        'arima': ArimaModel,
        'ensemble': EnsembleModel
    }
    if method not in factories:
        raise ValueError(f"Unknown forecasting method: {method}")
    return factories[method]()


class TimeSeriesForecaster:
    """
    Forecasting facade that picks a model for the series.

    With method='auto': Holt-Winters when two full seasonal cycles are
    available, ARIMA from 10 points, linear regression otherwise. A failing
    model falls back to linear regression.
    """

    def __init__(
        self,
        method: str = 'auto',
        seasonal_period: Optional[int] = None,
        verbose: Optional[bool] = None
    ):
        """
        Initialize forecaster.

        Args:
            method: 'auto' or a built-in model name (see build_model)
            seasonal_period: Cycle length for Holt-Winters (defaults to settings)
            verbose: Print fallback warnings (defaults to settings)
        """
        settings = get_settings()
        self.method = method
        self.seasonal_period = seasonal_period or settings.seasonal_period
        self.verbose = settings.verbose if verbose is None else verbose

    def _choose_method(self, n: int) -> str:
        if n >= 2 * self.seasonal_period:
            return 'holt_winters'
        if n >= 10:
            return 'arima'
        return 'linear'

    def forecast(self, series: Sequence[TimeSeriesPoint], periods: int) -> Forecast:
        """
        Generate a forecast with confidence intervals.

        Args:
            series: Observed series
            periods: Number of future steps

        Returns:
            Forecast; `parameters['fallback_from']` names the model that failed
            when the linear fallback was used
        """
        if not series:
            raise InsufficientDataError("Cannot forecast an empty series")

        method = self._choose_method(len(series)) if self.method == 'auto' else self.method
        model = build_model(method, self.seasonal_period)

        try:
            return model.forecast(series, periods)
        except (ForecastError, InsufficientDataError) as e:
            if isinstance(model, LinearRegressionModel):
                raise
            if self.verbose:
                print(f"[WARN] {model.name} forecast failed ({e.message}), falling back to linear regression")

        fallback = LinearRegressionModel().forecast(series, periods)
        return fallback.model_copy(
            update={'parameters': {**fallback.parameters, 'fallback_from': model.kind.value}}
        )
