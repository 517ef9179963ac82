"""Async entry points that run the engine in worker threads."""

import asyncio
from datetime import date
from typing import Any, Callable, List, Mapping, Optional, Sequence

from ..analytics.base_models import BacktestResult, CrossValidationResult, Insight, ModelComparison
from ..analytics.forecasting import ForecastModel
from ..analytics.synthesizer import InsightGenerator
from ..analytics.validation import ModelValidator
from ..core.cancellation import CancellationToken
from ..models.series_models import TimeSeriesPoint


class AnalyticsService:
    """
    Runs validator and insight jobs off the event loop.

    Each call gets its own CancellationToken (or uses the one passed in).
    When the awaiting task is cancelled the token is set, so the worker
    stops at its next fold boundary instead of running to completion.
    """

    def __init__(
        self,
        validator: Optional[ModelValidator] = None,
        generator: Optional[InsightGenerator] = None
    ):
        self.validator = validator or ModelValidator()
        self.generator = generator or InsightGenerator()

    @staticmethod
    async def _run(
        fn: Callable[..., Any],
        *args: Any,
        cancel_token: Optional[CancellationToken] = None,
        **kwargs: Any
    ) -> Any:
        token = cancel_token or CancellationToken()
        try:
            return await asyncio.to_thread(fn, *args, cancel_token=token, **kwargs)
        except asyncio.CancelledError:
            token.cancel("awaiting task was cancelled")
            raise

    async def cross_validate(
        self,
        series: Sequence[TimeSeriesPoint],
        model: ForecastModel,
        cancel_token: Optional[CancellationToken] = None,
        **options: Any
    ) -> CrossValidationResult:
        return await self._run(
            self.validator.cross_validate, series, model,
            cancel_token=cancel_token, **options
        )

    async def walk_forward_validation(
        self,
        series: Sequence[TimeSeriesPoint],
        models: Sequence[ForecastModel],
        cancel_token: Optional[CancellationToken] = None,
        **options: Any
    ) -> ModelComparison:
        return await self._run(
            self.validator.walk_forward_validation, series, models,
            cancel_token=cancel_token, **options
        )

    async def backtest(
        self,
        series: Sequence[TimeSeriesPoint],
        model: ForecastModel,
        cancel_token: Optional[CancellationToken] = None,
        **options: Any
    ) -> BacktestResult:
        return await self._run(
            self.validator.backtest, series, model,
            cancel_token=cancel_token, **options
        )

    async def select_best_model(
        self,
        series: Sequence[TimeSeriesPoint],
        models: Sequence[ForecastModel],
        cancel_token: Optional[CancellationToken] = None,
        **options: Any
    ) -> ModelComparison:
        return await self._run(
            self.validator.select_best_model, series, models,
            cancel_token=cancel_token, **options
        )

    async def benchmark_models(
        self,
        series: Sequence[TimeSeriesPoint],
        models: Sequence[ForecastModel],
        cancel_token: Optional[CancellationToken] = None,
        **options: Any
    ) -> ModelComparison:
        return await self._run(
            self.validator.benchmark_models, series, models,
            cancel_token=cancel_token, **options
        )

    async def generate_insights(
        self,
        performance: Optional[Sequence[TimeSeriesPoint]] = None,
        engagement: Optional[Sequence[TimeSeriesPoint]] = None,
        metrics: Optional[Mapping[str, Sequence[TimeSeriesPoint]]] = None,
        segments: Optional[Mapping[str, Sequence[float]]] = None,
        as_of: Optional[date] = None,
        limit: Optional[int] = None
    ) -> List[Insight]:
        """Insight generation has no fold loop, so it runs without a token."""
        return await asyncio.to_thread(
            self.generator.generate_insights,
            performance=performance,
            engagement=engagement,
            metrics=metrics,
            segments=segments,
            as_of=as_of,
            limit=limit
        )
