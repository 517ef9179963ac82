from .series_models import (
    Record,
    TimeSeriesPoint,
    FormulaSpec,
    TransformConfig,
    NormalizationMethod,
    TimeBucket,
    coerce_date,
    to_number
)

__all__ = [
    'Record',
    'TimeSeriesPoint',
    'FormulaSpec',
    'TransformConfig',
    'NormalizationMethod',
    'TimeBucket',
    'coerce_date',
    'to_number'
]
