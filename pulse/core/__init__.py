"""Configuration, errors and cancellation shared by the engine."""

from .config import Settings, get_settings
from .cancellation import CancellationToken
from .exceptions import (
    AnalyticsError,
    InsufficientDataError,
    NoValidModelError,
    ForecastError,
    FormulaSyntaxError,
    OperationCancelledError
)

__all__ = [
    'Settings',
    'get_settings',
    'CancellationToken',
    'AnalyticsError',
    'InsufficientDataError',
    'NoValidModelError',
    'ForecastError',
    'FormulaSyntaxError',
    'OperationCancelledError'
]
