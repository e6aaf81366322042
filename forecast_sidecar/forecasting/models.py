"""
Cost Forecasting Models

Point-forecast algorithms with prediction intervals:
- Linear regression (ordinary least squares on the day index)
- Holt's linear exponential smoothing
- Seasonal decomposition with a linear trend
- Accuracy-weighted ensemble of the three

All models read the cleaned series only and forecast one point per day
after the last observation.
"""

import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..domain import (
    CostObservation,
    ForecastConfig,
    ForecastedPoint,
    ModelFitError,
    ModelForecast,
    ModelType,
)

logger = logging.getLogger(__name__)


# Critical values by prediction interval (normal approximation)
T_VALUES = {
    80: 1.282,
    90: 1.645,
    95: 1.96,
    99: 2.576,
}
DEFAULT_T_VALUE = 1.96
SMALL_SAMPLE_DOF = 30
SMALL_SAMPLE_CORRECTION = 1.2

# Ensemble weights when no member has any accuracy
EQUAL_WEIGHTS = (0.33, 0.33, 0.34)

_EPSILON = 1e-12


def t_value(interval_pct: int, degrees_of_freedom: int) -> float:
    """Critical value for a prediction interval, widened for small samples."""
    value = T_VALUES.get(interval_pct, DEFAULT_T_VALUE)
    if degrees_of_freedom < SMALL_SAMPLE_DOF:
        value *= SMALL_SAMPLE_CORRECTION
    return value


def r_squared(ss_residual: float, ss_total: float) -> float:
    """
    Coefficient of determination.

    A constant series has no variance to explain: it scores 1.0 when the fit
    reproduces it exactly and 0.0 otherwise.
    """
    if ss_total <= _EPSILON:
        return 1.0 if ss_residual <= _EPSILON else 0.0
    return 1 - ss_residual / ss_total


def error_metrics(actual: np.ndarray, fitted: np.ndarray) -> Tuple[float, float, float]:
    """MAE, RMSE and R-squared of in-sample fitted values."""
    residuals = actual - fitted
    ss_residual = float(np.sum(residuals ** 2))
    ss_total = float(np.sum((actual - actual.mean()) ** 2))

    mae = float(np.mean(np.abs(residuals)))
    rmse = math.sqrt(ss_residual / len(actual))
    return mae, rmse, r_squared(ss_residual, ss_total)


def ensemble_weights(accuracies: Sequence[float]) -> List[float]:
    """Weights proportional to accuracy, or an even split when all are zero."""
    total = sum(accuracies)
    if total > 0:
        return [accuracy / total for accuracy in accuracies]
    if len(accuracies) == len(EQUAL_WEIGHTS):
        return list(EQUAL_WEIGHTS)
    return [1 / len(accuracies)] * len(accuracies)


@dataclass
class TrendFit:
    """Least-squares line through (index, value) pairs."""
    slope: float
    intercept: float
    n: int
    sum_x: float
    sum_xx: float
    ss_residual: float

    def predict(self, x) -> float:
        return self.slope * x + self.intercept

    def fitted(self) -> np.ndarray:
        return self.slope * np.arange(self.n, dtype=float) + self.intercept


def fit_trend(values: np.ndarray) -> TrendFit:
    """Closed-form OLS on index 0..n-1."""
    n = len(values)
    x = np.arange(n, dtype=float)

    sum_x = float(np.sum(x))
    sum_y = float(np.sum(values))
    sum_xy = float(np.sum(x * values))
    sum_xx = float(np.sum(x * x))

    denominator = n * sum_xx - sum_x * sum_x
    if n < 2 or denominator == 0:
        raise ModelFitError(f"Cannot fit a trend line to {n} observations")

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    ss_residual = float(np.sum((values - (slope * x + intercept)) ** 2))

    return TrendFit(
        slope=slope,
        intercept=intercept,
        n=n,
        sum_x=sum_x,
        sum_xx=sum_xx,
        ss_residual=ss_residual,
    )


def _costs(series: List[CostObservation]) -> np.ndarray:
    return np.array([point.total_cost for point in series], dtype=float)


def _make_point(date, raw_prediction: float, margin: float, confidence: float) -> ForecastedPoint:
    """Clamp a raw prediction and its interval so 0 <= lower <= predicted <= upper."""
    predicted = max(0.0, float(raw_prediction))
    return ForecastedPoint(
        date=date,
        predicted_cost=predicted,
        lower_bound=max(0.0, float(raw_prediction - margin)),
        upper_bound=max(predicted, float(raw_prediction + margin)),
        confidence=confidence,
    )


class ForecastModel:
    """Base class for the forecasting models."""

    model_type: ModelType

    def __init__(self, config: ForecastConfig):
        self.config = config

    def forecast(self, series: List[CostObservation]) -> ModelForecast:
        raise NotImplementedError

    def _future_dates(self, series: List[CostObservation]):
        last = series[-1].timestamp
        return [last + timedelta(days=step) for step in range(1, self.config.forecast_days + 1)]


class LinearRegressionModel(ForecastModel):
    """Straight-line trend with the textbook OLS prediction interval."""

    model_type = ModelType.LINEAR
    MIN_OBSERVATIONS = 3

    def forecast(self, series: List[CostObservation]) -> ModelForecast:
        costs = _costs(series)
        n = len(costs)
        if n < self.MIN_OBSERVATIONS:
            raise ModelFitError(
                f"Linear regression needs at least {self.MIN_OBSERVATIONS} observations, got {n}"
            )

        trend = fit_trend(costs)
        standard_error = math.sqrt(trend.ss_residual / (n - 2))
        t = t_value(self.config.prediction_interval_pct, n - 2)
        x_mean = trend.sum_x / n
        sxx = trend.sum_xx - trend.sum_x * trend.sum_x / n

        points = []
        for step, date in enumerate(self._future_dates(series), start=1):
            x = n - 1 + step
            margin = t * standard_error * math.sqrt(1 + 1 / n + (x - x_mean) ** 2 / sxx)
            points.append(_make_point(date, trend.predict(x), margin, self.config.confidence))

        mae, rmse, rsq = error_metrics(costs, trend.fitted())
        return ModelForecast(
            model_type=self.model_type,
            points=points,
            model_accuracy=max(0.0, rsq),
            mean_absolute_error=mae,
            root_mean_square_error=rmse,
            r_squared=rsq,
        )


class ExponentialSmoothingModel(ForecastModel):
    """
    Holt's linear method with fixed smoothing constants.

    The interval is a deliberately simple approximation: the in-sample
    residual variance inflated by 10% of the squared horizon.
    """

    model_type = ModelType.EXPONENTIAL
    ALPHA = 0.3  # Level
    BETA = 0.3   # Trend
    HORIZON_VARIANCE_GROWTH = 0.1
    MIN_OBSERVATIONS = 2

    def smooth(self, costs: Sequence[float]) -> Tuple[float, float, List[float]]:
        """Return the final level, final trend and the smoothed series."""
        level = costs[0]
        trend = costs[1] - costs[0]
        smoothed = [costs[0]]

        for cost in costs[1:]:
            previous_level = level
            level = self.ALPHA * cost + (1 - self.ALPHA) * (level + trend)
            trend = self.BETA * (level - previous_level) + (1 - self.BETA) * trend
            smoothed.append(level)

        return level, trend, smoothed

    def forecast(self, series: List[CostObservation]) -> ModelForecast:
        costs = _costs(series)
        n = len(costs)
        if n < self.MIN_OBSERVATIONS:
            raise ModelFitError(
                f"Exponential smoothing needs at least {self.MIN_OBSERVATIONS} observations, got {n}"
            )

        level, trend, smoothed = self.smooth(costs.tolist())
        smoothed = np.array(smoothed, dtype=float)

        variance = float(np.sum((costs - smoothed) ** 2)) / (n - 1)
        t = t_value(self.config.prediction_interval_pct, n - 2)

        points = []
        for step, date in enumerate(self._future_dates(series), start=1):
            margin = t * math.sqrt(variance * (1 + step ** 2 * self.HORIZON_VARIANCE_GROWTH))
            points.append(_make_point(date, level + step * trend, margin, self.config.confidence))

        mae, rmse, rsq = error_metrics(costs, smoothed)
        return ModelForecast(
            model_type=self.model_type,
            points=points,
            model_accuracy=max(0.0, rsq),
            mean_absolute_error=mae,
            root_mean_square_error=rmse,
            r_squared=rsq,
        )


class SeasonalDecompositionModel(ForecastModel):
    """
    Multiplicative seasonal factors per phase of the period, with a linear
    trend fitted to the deseasonalized series.

    Series shorter than two full periods are forecast with exponential
    smoothing instead; the result is flagged with fallback_used.
    """

    model_type = ModelType.SEASONAL

    def __init__(self, config: ForecastConfig):
        super().__init__(config)
        self.seasonal_factors: Optional[List[float]] = None

    def forecast(self, series: List[CostObservation]) -> ModelForecast:
        period = self.config.seasonality_period_days
        costs = _costs(series)
        n = len(costs)

        if n < 2 * period:
            logger.warning(
                f"Seasonal decomposition needs {2 * period} observations, got {n}; "
                "using exponential smoothing"
            )
            result = ExponentialSmoothingModel(self.config).forecast(series)
            result.fallback_used = True
            return result

        if n < 3:
            raise ModelFitError(f"Seasonal decomposition needs at least 3 observations, got {n}")

        phases = np.arange(n) % period
        seasonal = np.array([costs[phases == phase].mean() for phase in range(period)])

        overall_mean = float(costs.mean())
        if overall_mean == 0:
            raise ModelFitError("Cannot derive seasonal factors from an all-zero series")
        factors = seasonal / overall_mean
        if np.any(factors == 0):
            raise ModelFitError("Seasonal factor of zero; series cannot be deseasonalized")
        self.seasonal_factors = [float(factor) for factor in factors]

        deseasonalized = costs / factors[phases]
        trend = fit_trend(deseasonalized)
        residual_std = math.sqrt(trend.ss_residual / (n - 2))
        t = t_value(self.config.prediction_interval_pct, n - 2)

        points = []
        for step, date in enumerate(self._future_dates(series), start=1):
            future_index = n + step - 1
            factor = factors[future_index % period]
            margin = t * residual_std * factor
            points.append(_make_point(
                date, trend.predict(future_index) * factor, margin, self.config.confidence
            ))

        mae, rmse, rsq = error_metrics(costs, trend.fitted() * factors[phases])
        return ModelForecast(
            model_type=self.model_type,
            points=points,
            model_accuracy=max(0.0, rsq),
            mean_absolute_error=mae,
            root_mean_square_error=rmse,
            r_squared=rsq,
        )


class EnsembleModel(ForecastModel):
    """
    Accuracy-weighted combination of the linear, exponential and seasonal
    forecasts. Error metrics are plain averages of the members' metrics.

    Never raises: members that cannot be fitted are left out, and if none
    can be, the last observed cost is carried forward.
    """

    model_type = ModelType.ENSEMBLE

    def __init__(self, config: ForecastConfig):
        super().__init__(config)
        self.members: List[ModelForecast] = []
        self.weights: List[float] = []

    def member_models(self) -> List[ForecastModel]:
        return [
            LinearRegressionModel(self.config),
            ExponentialSmoothingModel(self.config),
            SeasonalDecompositionModel(self.config),
        ]

    def forecast(self, series: List[CostObservation]) -> ModelForecast:
        self.members = []
        for model in self.member_models():
            try:
                self.members.append(model.forecast(series))
            except (ModelFitError, ArithmeticError) as e:
                logger.warning(f"Ensemble member {model.model_type.value} failed: {e}")

        if not self.members:
            self.weights = []
            return self._carry_forward(series)

        self.weights = ensemble_weights([m.model_accuracy for m in self.members])
        count = len(self.members)

        points = []
        for i in range(self.config.forecast_days):
            member_points = [member.points[i] for member in self.members]
            points.append(ForecastedPoint(
                date=member_points[0].date,
                predicted_cost=sum(w * p.predicted_cost for w, p in zip(self.weights, member_points)),
                lower_bound=sum(w * p.lower_bound for w, p in zip(self.weights, member_points)),
                upper_bound=sum(w * p.upper_bound for w, p in zip(self.weights, member_points)),
                confidence=sum(p.confidence for p in member_points) / count,
            ))

        return ModelForecast(
            model_type=self.model_type,
            points=points,
            model_accuracy=sum(m.model_accuracy for m in self.members) / count,
            mean_absolute_error=sum(m.mean_absolute_error for m in self.members) / count,
            root_mean_square_error=sum(m.root_mean_square_error for m in self.members) / count,
            r_squared=sum(m.r_squared for m in self.members) / count,
        )

    def _carry_forward(self, series: List[CostObservation]) -> ModelForecast:
        logger.warning("No ensemble member could be fitted; carrying the last cost forward")
        last_cost = series[-1].total_cost
        points = [
            _make_point(date, last_cost, 0.0, self.config.confidence)
            for date in self._future_dates(series)
        ]
        return ModelForecast(
            model_type=self.model_type,
            points=points,
            model_accuracy=0.0,
            mean_absolute_error=0.0,
            root_mean_square_error=0.0,
            r_squared=0.0,
            fallback_used=True,
        )


MODEL_CLASSES = {
    ModelType.LINEAR: LinearRegressionModel,
    ModelType.EXPONENTIAL: ExponentialSmoothingModel,
    ModelType.SEASONAL: SeasonalDecompositionModel,
    ModelType.ENSEMBLE: EnsembleModel,
}


def build_model(model_type: ModelType, config: ForecastConfig) -> ForecastModel:
    """Instantiate the model for a concrete (non-AUTO) model type."""
    try:
        model_class = MODEL_CLASSES[model_type]
    except KeyError:
        raise ValueError(f"No forecasting model for {model_type.value}") from None
    return model_class(config)


__all__ = [
    "T_VALUES",
    "EQUAL_WEIGHTS",
    "t_value",
    "r_squared",
    "error_metrics",
    "ensemble_weights",
    "TrendFit",
    "fit_trend",
    "ForecastModel",
    "LinearRegressionModel",
    "ExponentialSmoothingModel",
    "SeasonalDecompositionModel",
    "EnsembleModel",
    "MODEL_CLASSES",
    "build_model",
]
