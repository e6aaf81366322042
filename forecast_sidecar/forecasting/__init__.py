"""Forecasting module for the FinOpsMind forecast sidecar."""

from .models import (
    LinearRegressionModel,
    ExponentialSmoothingModel,
    SeasonalDecompositionModel,
    EnsembleModel,
    build_model,
    ensemble_weights,
    t_value,
)
from .selector import ModelSelector, forecast_accuracy
from .events import BusinessEventAdjuster
from .engine import (
    ForecastingSession,
    CostForecastingEngine,
    generate_forecast,
    generate_service_forecasts,
)

__all__ = [
    "LinearRegressionModel", "ExponentialSmoothingModel",
    "SeasonalDecompositionModel", "EnsembleModel", "build_model",
    "ensemble_weights", "t_value", "ModelSelector", "forecast_accuracy",
    "BusinessEventAdjuster", "ForecastingSession", "CostForecastingEngine",
    "generate_forecast", "generate_service_forecasts",
]
