"""Engine configuration management."""

from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Engine settings (read from PULSE_* environment variables or .env)."""

    model_config = ConfigDict(
        env_file=".env",
        env_prefix="PULSE_",
        case_sensitive=False,
        extra="ignore"
    )

    # Console output for validator/collector progress
    verbose: bool = False

    # Detector
    default_z_threshold: float = 2.0
    anomaly_min_samples: int = 5
    anomaly_confidence_cap: float = 95.0
    seasonal_period: int = 7

    # Preprocessing
    outlier_threshold: float = 2.5
    max_differences: int = 2
    stationarity_alpha: float = 0.05

    # Validator
    min_train_size: int = 30
    cv_test_size: int = 7
    cv_step: int = 1
    walk_forward_initial_train: int = 50
    walk_forward_max_iterations: int = 10
    backtest_periods: int = 30
    backtest_horizon: int = 7
    benchmark_iterations: int = 10

    # Insight thresholds
    min_trend_points: int = 10
    min_trend_confidence: float = 70.0
    min_trend_change: float = 15.0  # |slope * 30 days|
    min_seasonal_strength: float = 25.0
    min_segment_gap: float = 10.0
    min_segment_samples: int = 3
    min_anomaly_points: int = 10
    recent_anomaly_window: int = 3
    min_forecast_points: int = 5
    forecast_periods: int = 6
    min_forecast_change_pct: float = 10.0
    max_insights: int = 8

    # Metric collector
    buffer_size: int = 100
    flush_interval_seconds: float = 10.0
    history_days: int = 90  # daily aggregates kept per metric


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
