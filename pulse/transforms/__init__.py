"""
Record transforms: derived formula fields, time bucketing, normalization,
confidence bands, smoothing, gap imputation and preprocessing (outliers,
stationarity, seasonal adjustment).
"""

from .formula import (
    Literal,
    FieldRef,
    BinaryOp,
    parse_formula,
    evaluate,
    field_references,
    apply_formula
)
from .pipeline import (
    bucket_by_time,
    normalize,
    add_confidence_band,
    moving_average,
    apply_transforms,
    records_to_series
)
from .cleaning import (
    DataQualityIssue,
    DataQualityReport,
    impute_missing,
    assess_data_quality
)
from .preprocessing import (
    OutlierPoint,
    StationarityResult,
    SeasonalAdjustment,
    PreprocessingOptions,
    PreprocessingResult,
    detect_outliers,
    winsorize,
    check_stationarity,
    make_stationary,
    remove_seasonality,
    preprocess
)

__all__ = [
    'Literal',
    'FieldRef',
    'BinaryOp',
    'parse_formula',
    'evaluate',
    'field_references',
    'apply_formula',
    'bucket_by_time',
    'normalize',
    'add_confidence_band',
    'moving_average',
    'apply_transforms',
    'records_to_series',
    'DataQualityIssue',
    'DataQualityReport',
    'impute_missing',
    'assess_data_quality',
    'OutlierPoint',
    'StationarityResult',
    'SeasonalAdjustment',
    'PreprocessingOptions',
    'PreprocessingResult',
    'detect_outliers',
    'winsorize',
    'check_stationarity',
    'make_stationary',
    'remove_seasonality',
    'preprocess'
]
