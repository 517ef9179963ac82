"""Result models for the analytics engine."""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class ModelKind(str, Enum):
    """Identifier of the model (or analysis) that produced a result."""
    LINEAR_REGRESSION = "linear_regression"
    NAIVE = "naive"
    DRIFT = "drift"
    EXPONENTIAL_SMOOTHING = "exponential_smoothing"
    HOLT_WINTERS = "holt_winters"
    ARIMA = "arima"
    ENSEMBLE = "ensemble"
    CUSTOM = "custom"
    SYNTHETIC_BASELINE = "synthetic_baseline"
    SEASONAL_DECOMPOSITION = "seasonal_decomposition"
    ANOMALY_DETECTION = "statistical_anomaly_detection"
    SEGMENT_ANALYSIS = "segment_analysis"
    SEASONAL_PATTERN = "seasonal_pattern_analysis"


class InsightCategory(str, Enum):
    PERFORMANCE = "performance"
    ENGAGEMENT = "engagement"
    TREND = "trend"
    ANOMALY = "anomaly"
    OPPORTUNITY = "opportunity"


class InsightImpact(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class AnomalyDirection(str, Enum):
    SPIKE = "spike"
    DROP = "drop"


# ---------------------------------------------------------------------------
# Forecasts
# ---------------------------------------------------------------------------

class ForecastPrediction(BaseModel):
    """One forecast step with its interval."""

    date: date
    predicted: float
    confidence: float = Field(ge=0, le=100, description="Confidence (0-100)")
    upper_bound: float
    lower_bound: float

    @model_validator(mode="after")
    def _check_bounds(self) -> "ForecastPrediction":
        if not self.lower_bound <= self.predicted <= self.upper_bound:
            raise ValueError(
                f"Interval [{self.lower_bound}, {self.upper_bound}] does not "
                f"contain prediction {self.predicted}"
            )
        return self


class AccuracyMetrics(BaseModel):
    """Error measures; percentages are on a 0-100 scale."""

    mae: float = 0.0
    rmse: float = 0.0
    mape: float = 0.0
    smape: float = 0.0

    # Relative ranking only; None when the model has no likelihood surrogate
    aic: Optional[float] = None
    bic: Optional[float] = None


class ResidualDiagnostics(BaseModel):
    """Residual test statistics (0 when a test could not be computed)."""

    ljung_box: float = 0.0
    jarque_bera: float = 0.0
    arch: float = 0.0


class Forecast(BaseModel):
    """Point forecasts, intervals and in-sample diagnostics from one model."""

    predictions: List[ForecastPrediction]
    accuracy: AccuracyMetrics = Field(default_factory=AccuracyMetrics)
    model: ModelKind
    parameters: Dict[str, Any] = Field(default_factory=dict)
    diagnostics: ResidualDiagnostics = Field(default_factory=ResidualDiagnostics)

    @property
    def values(self) -> List[float]:
        return [p.predicted for p in self.predictions]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class CrossValidationResult(BaseModel):
    """Rolling-window cross-validation outcome for one model."""

    model_name: str
    scores: List[float] = Field(description="Finite fold RMSEs")
    fold_scores: List[float] = Field(description="All fold RMSEs, inf for failed folds")
    mean_score: float
    std_score: float
    failed_folds: int = 0
    validation_method: str = "rolling_window"


class RankedModel(BaseModel):
    """A candidate model with its score and rank (1 = best)."""

    name: str
    forecast: Optional[Forecast] = None
    score: float
    rank: int


class ModelComparison(BaseModel):
    """Ranked candidates plus aggregate metrics."""

    models: List[RankedModel]
    best_model: str
    performance_metrics: Dict[str, float] = Field(default_factory=dict)

    def get(self, name: str) -> Optional[RankedModel]:
        for ranked in self.models:
            if ranked.name == name:
                return ranked
        return None


class BacktestAccuracy(BaseModel):
    mae: float
    rmse: float
    mape: float
    smape: float
    directional_accuracy: float = Field(description="Percent of correctly predicted moves")


class IntervalMetrics(BaseModel):
    coverage: float = Field(description="Percent of actuals inside their interval")
    average_width: float


class BacktestResult(BaseModel):
    """Stitched hold-out predictions and their aggregate accuracy."""

    model_name: str
    periods: List[date]
    actual_values: List[float]
    predicted_values: List[float]
    errors: List[float]
    accuracy: BacktestAccuracy
    confidence_intervals: IntervalMetrics
    fallback_windows: int = Field(0, description="Windows that used the naive fallback")


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

class TrendAnalysis(BaseModel):
    slope: float
    intercept: float
    r_squared: float
    correlation: float
    p_value: float
    confidence: float
    direction: TrendDirection
    data_points: int


class SeasonalityResult(BaseModel):
    period: int
    strength: float = Field(description="Share of variance explained by the cycle (0-100)")
    seasonal: List[float] = Field(default_factory=list, description="Profile per position in the cycle")
    peak_position: Optional[int] = None
    peak_weekday: Optional[str] = None
    data_points: int = 0


class AnomalyPoint(BaseModel):
    index: int
    date: date
    value: float
    z_score: float
    is_anomaly: bool
    direction: AnomalyDirection
    confidence: float


class AnomalyReport(BaseModel):
    """Per-point z-scores for a series."""

    points: List[AnomalyPoint]
    mean: float
    std: float
    threshold: float

    @property
    def anomalies(self) -> List[AnomalyPoint]:
        return [p for p in self.points if p.is_anomaly]

    def recent(self, count: int = 3) -> List[AnomalyPoint]:
        """Last `count` flagged points, oldest first."""
        flagged = self.anomalies
        return flagged[-count:] if count > 0 else []


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------

class Insight(BaseModel):
    """A ranked, human-readable finding."""

    id: str
    title: str
    description: str
    confidence: float = Field(ge=0, le=100)
    impact: InsightImpact
    category: InsightCategory
    timeframe: str
    recommendations: List[str] = Field(default_factory=list)
    data_points: int = 0
    model: Optional[ModelKind] = None


class PerformanceForecastPoint(BaseModel):
    """History rows carry `actual`; forecast rows carry the prediction fields."""

    date: date
    actual: Optional[float] = None
    predicted: Optional[float] = None
    confidence: Optional[float] = None
    upper_bound: Optional[float] = None
    lower_bound: Optional[float] = None


class PerformanceForecast(BaseModel):
    points: List[PerformanceForecastPoint]
    model: ModelKind
    is_synthetic: bool = False

    @property
    def history(self) -> List[PerformanceForecastPoint]:
        return [p for p in self.points if p.actual is not None]

    @property
    def predictions(self) -> List[PerformanceForecastPoint]:
        return [p for p in self.points if p.predicted is not None]
