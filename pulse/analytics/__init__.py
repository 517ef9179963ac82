"""
Analytics Layer

Forecasting, diagnostics, validation and insight generation over metric series.
Numbers are computed with fixed statistical code (numpy, scipy, statsmodels);
nothing here performs I/O.

Modules:
- metrics: OLS, R^2, accuracy measures and residual diagnostics
- forecasting: Pluggable forecast models and the auto-selecting forecaster
- anomaly_detection: Trend, seasonal strength and z-score anomalies
- validation: Cross-validation, walk-forward, backtesting, selection, benchmarking
- synthesizer: Ranked insights and the performance outlook
"""

from .base_models import (
    ModelKind,
    InsightCategory,
    InsightImpact,
    TrendDirection,
    AnomalyDirection,
    ForecastPrediction,
    AccuracyMetrics,
    ResidualDiagnostics,
    Forecast,
    CrossValidationResult,
    RankedModel,
    ModelComparison,
    BacktestAccuracy,
    IntervalMetrics,
    BacktestResult,
    TrendAnalysis,
    SeasonalityResult,
    AnomalyPoint,
    AnomalyReport,
    Insight,
    PerformanceForecastPoint,
    PerformanceForecast
)

from .metrics import linear_regression, r_squared, accuracy_metrics, residual_diagnostics
from .forecasting import (
    ForecastModel,
    LinearRegressionModel,
    NaiveModel,
    DriftModel,
    ExponentialSmoothingModel,
    HoltWintersModel,
    ArimaModel,
    EnsembleModel,
    CallableModel,
    TimeSeriesForecaster,
    build_model
)
from .anomaly_detection import AnomalyDetector
from .validation import ModelValidator
from .synthesizer import InsightGenerator

__all__ = [
    # Result models
    'ModelKind',
    'InsightCategory',
    'InsightImpact',
    'TrendDirection',
    'AnomalyDirection',
    'ForecastPrediction',
    'AccuracyMetrics',
    'ResidualDiagnostics',
    'Forecast',
    'CrossValidationResult',
    'RankedModel',
    'ModelComparison',
    'BacktestAccuracy',
    'IntervalMetrics',
    'BacktestResult',
    'TrendAnalysis',
    'SeasonalityResult',
    'AnomalyPoint',
    'AnomalyReport',
    'Insight',
    'PerformanceForecastPoint',
    'PerformanceForecast',

    # Metrics
    'linear_regression',
    'r_squared',
    'accuracy_metrics',
    'residual_diagnostics',

    # Models
    'ForecastModel',
    'LinearRegressionModel',
    'NaiveModel',
    'DriftModel',
    'ExponentialSmoothingModel',
    'HoltWintersModel',
    'ArimaModel',
    'EnsembleModel',
    'CallableModel',
    'TimeSeriesForecaster',
    'build_model',

    # Analyzers
    'AnomalyDetector',
    'ModelValidator',
    'InsightGenerator'
]
