"""
Model validation: rolling-window cross-validation, walk-forward comparison,
backtesting, information-criterion selection and benchmarking.

Every loop checks an optional CancellationToken at each fold/iteration
boundary. A fold that fails scores `inf` and the run continues; only
runs where nothing succeeded raise.
"""

import math
import time
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.cancellation import CancellationToken
from ..core.config import get_settings
from ..core.exceptions import (
    InsufficientDataError,
    NoValidModelError,
    OperationCancelledError
)
from ..models.series_models import TimeSeriesPoint
from .base_models import (
    BacktestAccuracy,
    BacktestResult,
    CrossValidationResult,
    Forecast,
    IntervalMetrics,
    ModelComparison,
    RankedModel
)
from .forecasting import ForecastModel
from .metrics import accuracy_metrics

INF = float('inf')


def _rmse(actual: Sequence[float], predicted: Sequence[float]) -> float:
    errors = np.asarray(actual, dtype=float) - np.asarray(predicted, dtype=float)
    return float(np.sqrt(np.mean(errors ** 2)))


def _check(cancel_token: Optional[CancellationToken]) -> None:
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()


def _rank(entries: List[Tuple[str, Optional[Forecast], float]]) -> List[RankedModel]:
    ordered = sorted(entries, key=lambda e: e[2])
    return [
        RankedModel(name=name, forecast=forecast, score=score, rank=i + 1)
        for i, (name, forecast, score) in enumerate(ordered)
    ]


def _score_spread(scores: Sequence[float]) -> float:
    finite = [s for s in scores if math.isfinite(s)]
    if len(finite) < 2:
        return 0.0
    return max(finite) - min(finite)


class ModelValidator:
    """Evaluates and compares forecast models on one series."""

    def __init__(self, verbose: Optional[bool] = None):
        """
        Initialize validator.

        Args:
            verbose: Print per-fold progress and warnings (defaults to settings)
        """
        self.settings = get_settings()
        self.verbose = self.settings.verbose if verbose is None else verbose

    def _log(self, message: str) -> None:
        if self.verbose:
            print(message)

    def _score_fold(
        self,
        model: ForecastModel,
        train: Sequence[TimeSeriesPoint],
        test: Sequence[TimeSeriesPoint],
        tag: str
    ) -> Tuple[float, Optional[Forecast]]:
        """RMSE of one train/test split; inf when the model fails."""
        try:
            forecast = model.forecast(train, len(test))
        except OperationCancelledError:
            raise
        except Exception as e:
            self._log(f"[WARN] {tag}: {model.name} failed: {e}")
            return INF, None

        predicted = forecast.values[:len(test)]
        if len(predicted) < len(test):
            self._log(f"[WARN] {tag}: {model.name} returned {len(predicted)} of {len(test)} steps")
            return INF, None

        score = _rmse([p.value for p in test], predicted)
        if not math.isfinite(score):
            return INF, None
        return score, forecast

    def cross_validate(
        self,
        series: Sequence[TimeSeriesPoint],
        model: ForecastModel,
        min_train_size: Optional[int] = None,
        test_size: Optional[int] = None,
        step: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> CrossValidationResult:
        """
        Rolling-window cross-validation.

        Trains on series[:i] and scores the next `test_size` points for
        i = min_train_size, min_train_size + step, ... up to n - test_size.

        Args:
            series: Observed series
            model: Candidate model
            min_train_size: First training window length (default 30)
            test_size: Points scored per fold (default 7)
            step: Window advance per fold (default 1)
            cancel_token: Checked before every fold

        Returns:
            CrossValidationResult with mean/std over finite folds

        Raises:
            InsufficientDataError: series too short, or every fold failed
            OperationCancelledError: cancel_token was set
        """
        min_train_size = min_train_size or self.settings.min_train_size
        test_size = test_size or self.settings.cv_test_size
        step = max(1, step or self.settings.cv_step)

        data = sorted(series, key=lambda p: p.date)
        n = len(data)
        if n < min_train_size + test_size:
            raise InsufficientDataError(
                f"Cross-validation needs {min_train_size + test_size} points, got {n}",
                details={'points': n, 'fold_scores': [], 'valid_scores': []}
            )

        fold_scores = []
        for i in range(min_train_size, n - test_size + 1, step):
            _check(cancel_token)
            score, _ = self._score_fold(model, data[:i], data[i:i + test_size], f"fold {i}")
            fold_scores.append(score)

        valid = [s for s in fold_scores if math.isfinite(s)]
        if not valid:
            raise InsufficientDataError(
                "All cross-validation folds failed",
                details={'fold_scores': fold_scores, 'valid_scores': []}
            )

        mean = float(np.mean(valid))
        std = float(np.std(valid))
        self._log(f"[CV] {model.name}: {len(valid)}/{len(fold_scores)} folds, mean RMSE {mean:.4f}")

        return CrossValidationResult(
            model_name=model.name,
            scores=valid,
            fold_scores=fold_scores,
            mean_score=mean,
            std_score=std,
            failed_folds=len(fold_scores) - len(valid)
        )

    def walk_forward_validation(
        self,
        series: Sequence[TimeSeriesPoint],
        models: Sequence[ForecastModel],
        initial_train_size: Optional[int] = None,
        test_size: Optional[int] = None,
        max_iterations: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> ModelComparison:
        """
        Compare models over the same sequence of expanding-window splits.

        Iterations = min(max_iterations, (n - initial_train_size) // test_size).
        Each model's score is its mean over successful iterations (inf when
        none succeeded); models are ranked ascending.

        Raises:
            InsufficientDataError: no iteration fits in the series
            NoValidModelError: every model failed every iteration
            OperationCancelledError: cancel_token was set
        """
        initial_train_size = initial_train_size or self.settings.walk_forward_initial_train
        test_size = test_size or self.settings.cv_test_size
        max_iterations = max_iterations or self.settings.walk_forward_max_iterations

        data = sorted(series, key=lambda p: p.date)
        n = len(data)
        iterations = min(max_iterations, max(0, (n - initial_train_size) // test_size))
        if iterations <= 0:
            raise InsufficientDataError(
                f"Walk-forward validation needs {initial_train_size + test_size} points, got {n}",
                details={'points': n}
            )

        scores: Dict[int, List[float]] = {i: [] for i in range(len(models))}
        last_forecast: Dict[int, Optional[Forecast]] = {i: None for i in range(len(models))}

        for iteration in range(iterations):
            _check(cancel_token)
            train_end = initial_train_size + iteration * test_size
            train, test = data[:train_end], data[train_end:train_end + test_size]

            for idx, model in enumerate(models):
                _check(cancel_token)
                score, forecast = self._score_fold(model, train, test, f"iteration {iteration}")
                scores[idx].append(score)
                if forecast is not None:
                    last_forecast[idx] = forecast

            self._log(f"[WALK-FORWARD] iteration {iteration + 1}/{iterations} done")

        entries = []
        for idx, model in enumerate(models):
            valid = [s for s in scores[idx] if math.isfinite(s)]
            mean = float(np.mean(valid)) if valid else INF
            entries.append((model.name, last_forecast[idx], mean))

        ranked = _rank(entries)
        valid_models = sum(1 for r in ranked if math.isfinite(r.score))
        if valid_models == 0:
            raise NoValidModelError(
                "Every model failed every walk-forward iteration",
                details={'models': [m.name for m in models], 'iterations': iterations}
            )

        return ModelComparison(
            models=ranked,
            best_model=ranked[0].name,
            performance_metrics={
                'total_iterations': iterations,
                'valid_models': valid_models,
                'best_score': ranked[0].score,
                'score_spread': _score_spread([r.score for r in ranked])
            }
        )

    def backtest(
        self,
        series: Sequence[TimeSeriesPoint],
        model: ForecastModel,
        backtest_periods: Optional[int] = None,
        forecast_horizon: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> BacktestResult:
        """
        Replay forecasts over the trailing `backtest_periods` points.

        The training window expands by `forecast_horizon` per window. A window
        whose forecast fails (or comes back short) uses the last known value
        with a +/-10% band instead.

        Raises:
            InsufficientDataError: fewer than backtest_periods + forecast_horizon points
            OperationCancelledError: cancel_token was set
        """
        backtest_periods = backtest_periods or self.settings.backtest_periods
        forecast_horizon = forecast_horizon or self.settings.backtest_horizon

        data = sorted(series, key=lambda p: p.date)
        n = len(data)
        if n < backtest_periods + forecast_horizon:
            raise InsufficientDataError(
                f"Backtest needs {backtest_periods + forecast_horizon} points, got {n}",
                details={'points': n}
            )

        train = data[:n - backtest_periods]
        test = data[n - backtest_periods:]

        actual, predicted, lower, upper = [], [], [], []
        fallback_windows = 0

        for start in range(0, backtest_periods, forecast_horizon):
            _check(cancel_token)
            history = train + test[:start]
            window = test[start:start + forecast_horizon]

            forecast = None
            try:
                forecast = model.forecast(history, len(window))
            except OperationCancelledError:
                raise
            except Exception as e:
                self._log(f"[WARN] Backtest window at {start} failed: {e}")

            if forecast is not None and len(forecast.predictions) >= len(window):
                for point, prediction in zip(window, forecast.predictions):
                    actual.append(point.value)
                    predicted.append(prediction.predicted)
                    lower.append(prediction.lower_bound)
                    upper.append(prediction.upper_bound)
            else:
                fallback_windows += 1
                last_value = history[-1].value
                band = (last_value * 0.9, last_value * 1.1)
                for point in window:
                    actual.append(point.value)
                    predicted.append(last_value)
                    lower.append(min(band))
                    upper.append(max(band))

        errors = [a - p for a, p in zip(actual, predicted)]
        metrics = accuracy_metrics(actual, predicted)

        correct = sum(
            1 for i in range(1, len(actual))
            if (predicted[i] > actual[i - 1]) == (actual[i] > actual[i - 1])
        )
        directional = correct / (len(actual) - 1) * 100 if len(actual) > 1 else 0.0

        covered = sum(1 for a, lo, hi in zip(actual, lower, upper) if lo <= a <= hi)
        coverage = covered / len(actual) * 100
        average_width = float(np.mean([hi - lo for lo, hi in zip(lower, upper)]))

        self._log(
            f"[BACKTEST] {model.name}: RMSE {metrics.rmse:.4f}, "
            f"coverage {coverage:.1f}%, {fallback_windows} fallback window(s)"
        )

        return BacktestResult(
            model_name=model.name,
            periods=[p.date for p in test],
            actual_values=actual,
            predicted_values=predicted,
            errors=errors,
            accuracy=BacktestAccuracy(
                mae=metrics.mae,
                rmse=metrics.rmse,
                mape=metrics.mape,
                smape=metrics.smape,
                directional_accuracy=directional
            ),
            confidence_intervals=IntervalMetrics(coverage=coverage, average_width=average_width),
            fallback_windows=fallback_windows
        )

    def select_best_model(
        self,
        series: Sequence[TimeSeriesPoint],
        models: Sequence[ForecastModel],
        forecast_horizon: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> ModelComparison:
        """
        Rank models fitted on the whole series by AIC + BIC (lower is better).

        Raises:
            NoValidModelError: no model produced both criteria
            OperationCancelledError: cancel_token was set
        """
        forecast_horizon = forecast_horizon or self.settings.backtest_horizon
        data = sorted(series, key=lambda p: p.date)

        entries = []
        for model in models:
            _check(cancel_token)
            try:
                forecast = model.forecast(data, forecast_horizon)
            except OperationCancelledError:
                raise
            except Exception as e:
                self._log(f"[WARN] {model.name} failed: {e}")
                entries.append((model.name, None, INF))
                continue

            aic, bic = forecast.accuracy.aic, forecast.accuracy.bic
            score = aic + bic if aic is not None and bic is not None else INF
            entries.append((model.name, forecast, score if math.isfinite(score) else INF))

        ranked = _rank(entries)
        valid_models = sum(1 for r in ranked if math.isfinite(r.score))
        if valid_models == 0:
            raise NoValidModelError(
                "No model produced information criteria",
                details={'models': [m.name for m in models]}
            )

        best = ranked[0]
        self._log(f"[SELECT] best model {best.name} (AIC+BIC {best.score:.2f})")

        return ModelComparison(
            models=ranked,
            best_model=best.name,
            performance_metrics={
                'models_evaluated': len(models),
                'valid_models': valid_models,
                'best_aic': best.forecast.accuracy.aic,
                'best_bic': best.forecast.accuracy.bic
            }
        )

    def benchmark_models(
        self,
        series: Sequence[TimeSeriesPoint],
        models: Sequence[ForecastModel],
        iterations: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> ModelComparison:
        """
        Score models on a fixed 80/20 split, repeated `iterations` times.

        Score = mean RMSE + mean wall-clock seconds per run, so accuracy
        dominates and speed breaks ties.

        Raises:
            InsufficientDataError: empty series
            OperationCancelledError: cancel_token was set
        """
        iterations = iterations or self.settings.benchmark_iterations
        data = sorted(series, key=lambda p: p.date)
        if not data:
            raise InsufficientDataError("Cannot benchmark on an empty series")

        train_size = int(len(data) * 0.8)
        train, test = data[:train_size], data[train_size:]

        entries = []
        for model in models:
            timings, scores = [], []
            for i in range(iterations):
                _check(cancel_token)
                started = time.perf_counter()
                score, _ = self._score_fold(model, train, test, f"benchmark {i}")
                if math.isfinite(score):
                    timings.append(time.perf_counter() - started)
                scores.append(score)

            valid = [s for s in scores if math.isfinite(s)]
            mean_score = float(np.mean(valid)) if valid else INF
            mean_time = float(np.mean(timings)) if timings else INF
            entries.append((model.name, None, mean_score + mean_time))
            self._log(f"[BENCHMARK] {model.name}: RMSE {mean_score:.4f}, {mean_time * 1000:.1f} ms/run")

        ranked = _rank(entries)

        return ModelComparison(
            models=ranked,
            best_model=ranked[0].name if ranked else "none",
            performance_metrics={
                'iterations': iterations,
                'models_evaluated': len(models),
                'valid_models': sum(1 for r in ranked if math.isfinite(r.score)),
                'best_score': ranked[0].score if ranked else INF
            }
        )
