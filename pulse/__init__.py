"""
pulse - time-series analytics engine.

Record transforms, forecasting, trend/seasonality/anomaly diagnostics, model
validation and ranked insight generation for content and engagement metrics.
"""

from .core import (
    Settings,
    get_settings,
    CancellationToken,
    AnalyticsError,
    InsufficientDataError,
    NoValidModelError,
    ForecastError,
    FormulaSyntaxError,
    OperationCancelledError
)
from .models import TimeSeriesPoint, TransformConfig, FormulaSpec
from .transforms import apply_transforms, records_to_series
from .analytics import (
    TimeSeriesForecaster,
    AnomalyDetector,
    ModelValidator,
    InsightGenerator
)
from .services import AnalyticsService, MetricCollector

__version__ = "0.1.0"

__all__ = [
    'Settings',
    'get_settings',
    'CancellationToken',
    'AnalyticsError',
    'InsufficientDataError',
    'NoValidModelError',
    'ForecastError',
    'FormulaSyntaxError',
    'OperationCancelledError',
    'TimeSeriesPoint',
    'TransformConfig',
    'FormulaSpec',
    'apply_transforms',
    'records_to_series',
    'TimeSeriesForecaster',
    'AnomalyDetector',
    'ModelValidator',
    'InsightGenerator',
    'AnalyticsService',
    'MetricCollector'
]
