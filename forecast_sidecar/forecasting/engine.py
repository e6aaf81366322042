"""
Cost Forecasting Engine

Runs the full forecasting pipeline on a ForecastingSession:
preprocess -> select/run model -> business event adjustment ->
insights, recommendations and data quality.

Sessions are immutable; every add returns a new session, so per-service
sub-runs can be fanned out to worker processes without shared state.
"""

import logging
import os
from concurrent import futures
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

from ..analysis import InsightsGenerator, RecommendationEngine
from ..domain import (
    BusinessEvent,
    CostObservation,
    ForecastConfig,
    ForecastResult,
    InsufficientDataError,
    ModelFitError,
    ModelForecast,
    ModelType,
)
from ..preprocessing import DataPreprocessor, DataQualityAssessor
from .events import BusinessEventAdjuster
from .models import EnsembleModel, build_model
from .selector import ModelSelector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForecastingSession:
    """Accumulated observations and events plus the config they run under."""
    config: ForecastConfig = field(default_factory=ForecastConfig)
    observations: Tuple[CostObservation, ...] = ()
    business_events: Tuple[BusinessEvent, ...] = ()

    def with_observations(self, data: Sequence[CostObservation]) -> "ForecastingSession":
        """Append observations, keeping the series sorted by timestamp."""
        merged = sorted([*self.observations, *data], key=lambda point: point.timestamp)
        return replace(self, observations=tuple(merged))

    def with_business_events(self, events: Sequence[BusinessEvent]) -> "ForecastingSession":
        return replace(self, business_events=self.business_events + tuple(events))

    def with_config(self, config: ForecastConfig) -> "ForecastingSession":
        return replace(self, config=config)

    def services(self) -> List[str]:
        """Distinct services in first-seen order."""
        return list(dict.fromkeys(
            service for point in self.observations for service in point.service_costs
        ))

    def for_service(self, service: str) -> "ForecastingSession":
        """Session whose series is a single service's cost (zero-cost days dropped)."""
        series = []
        for point in self.observations:
            cost = point.service_costs.get(service, 0)
            if cost > 0:
                series.append(replace(point, total_cost=cost, service_costs={service: cost}))
        return replace(self, observations=tuple(series))


def _run_model(model_type: ModelType, series: List[CostObservation], config: ForecastConfig) -> ModelForecast:
    model = build_model(model_type, config)
    if config.model_type is not ModelType.AUTO or model_type is ModelType.ENSEMBLE:
        return model.forecast(series)

    try:
        return model.forecast(series)
    except (ModelFitError, ArithmeticError) as e:
        logger.warning(f"Selected model {model_type.value} failed on the full series ({e}); using ensemble")
        return EnsembleModel(config).forecast(series)


def generate_forecast(session: ForecastingSession) -> ForecastResult:
    """
    Generate a cost forecast for the session's observations.

    Raises:
        InsufficientDataError: fewer observations than config.min_data_points
        ModelFitError: an explicitly requested model cannot fit the series
    """
    config = session.config
    raw = list(session.observations)

    if len(raw) < config.min_data_points:
        raise InsufficientDataError(config.min_data_points, len(raw))

    cleaned = DataPreprocessor(config.outlier_threshold_std_dev).preprocess(raw)
    if not cleaned:
        raise InsufficientDataError(config.min_data_points, 0)

    model_type = config.model_type
    if model_type is ModelType.AUTO:
        model_type = ModelSelector(config).select(cleaned)

    logger.info(f"Generating {config.forecast_days}-day forecast with {model_type.value} model "
                f"from {len(cleaned)} data points")
    model_forecast = _run_model(model_type, cleaned, config)

    points = model_forecast.points
    if config.include_business_events and session.business_events:
        points = BusinessEventAdjuster(session.business_events).apply(points)

    insights = InsightsGenerator().generate(cleaned)
    recommendations = RecommendationEngine(
        include_growth_trends=config.include_growth_trends
    ).generate(points, insights, cleaned)
    data_quality = DataQualityAssessor(config.outlier_threshold_std_dev).assess(raw)

    return ForecastResult(
        forecasted_costs=points,
        model_accuracy=model_forecast.model_accuracy,
        mean_absolute_error=model_forecast.mean_absolute_error,
        root_mean_square_error=model_forecast.root_mean_square_error,
        r_squared=model_forecast.r_squared,
        insights=insights,
        recommendations=recommendations,
        data_quality=data_quality,
        model_used=model_forecast.model_type,
    )


def generate_service_forecasts(
    session: ForecastingSession,
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    use_processes: bool = True,
) -> Dict[str, ForecastResult]:
    """
    Forecast every service separately, in parallel.

    Services with fewer than min_data_points non-zero days are skipped.

    Args:
        session: Session holding the combined observations
        max_workers: Worker limit (defaults to the CPU count)
        timeout: Seconds allowed for the whole batch
        use_processes: Use a process pool; threads otherwise

    Returns:
        Forecasts keyed by service, in first-seen service order

    Raises:
        concurrent.futures.TimeoutError: the batch did not finish within timeout
    """
    sub_sessions = {}
    for service in session.services():
        sub_session = session.for_service(service)
        if len(sub_session.observations) >= session.config.min_data_points:
            sub_sessions[service] = sub_session
        else:
            logger.debug(f"Skipping {service}: {len(sub_session.observations)} data points")

    if not sub_sessions:
        return {}

    workers = min(max_workers or os.cpu_count() or 1, len(sub_sessions))
    executor_class = ProcessPoolExecutor if use_processes else ThreadPoolExecutor
    logger.info(f"Forecasting {len(sub_sessions)} services with {workers} workers")

    results = {}
    executor = executor_class(max_workers=workers)
    finished = False
    try:
        pending = {
            executor.submit(generate_forecast, sub_session): service
            for service, sub_session in sub_sessions.items()
        }
        for future in as_completed(pending, timeout=timeout):
            results[pending[future]] = future.result()
        finished = True
    except futures.TimeoutError:
        logger.error(f"Service forecasts timed out after {timeout}s "
                     f"({len(results)}/{len(sub_sessions)} complete)")
        raise
    finally:
        executor.shutdown(wait=finished, cancel_futures=not finished)

    return {service: results[service] for service in sub_sessions}


class CostForecastingEngine:
    """
    Convenience wrapper holding a session for a single writer.

    Usage:
        engine = CostForecastingEngine(ForecastConfig(forecast_days=14))
        engine.add_historical_data(observations)
        result = engine.generate_forecast()
    """

    def __init__(self, config: Optional[ForecastConfig] = None):
        self.session = ForecastingSession(config=config or ForecastConfig())

    @property
    def config(self) -> ForecastConfig:
        return self.session.config

    def add_historical_data(self, data: Sequence[CostObservation]) -> None:
        self.session = self.session.with_observations(data)

    def add_business_events(self, events: Sequence[BusinessEvent]) -> None:
        self.session = self.session.with_business_events(events)

    def generate_forecast(self) -> ForecastResult:
        return generate_forecast(self.session)

    def generate_service_forecasts(self, **kwargs) -> Dict[str, ForecastResult]:
        return generate_service_forecasts(self.session, **kwargs)


__all__ = [
    "ForecastingSession",
    "generate_forecast",
    "generate_service_forecasts",
    "CostForecastingEngine",
]
