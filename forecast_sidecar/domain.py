"""
Forecast Domain Types

Data structures shared by the preprocessing, forecasting and analysis
modules. Everything here is created fresh per forecast run; only the
observations and events held by a ForecastingSession outlive a call.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import List, Dict, Optional
from enum import Enum


class ModelType(Enum):
    """Forecasting models the engine can run."""
    LINEAR = "LINEAR"
    EXPONENTIAL = "EXPONENTIAL"
    SEASONAL = "SEASONAL"
    ENSEMBLE = "ENSEMBLE"
    AUTO = "AUTO"            # Cross-validate and pick


class EventImpact(Enum):
    """Magnitude/direction buckets for known business events."""
    HIGH_INCREASE = "HIGH_INCREASE"
    MEDIUM_INCREASE = "MEDIUM_INCREASE"
    LOW_INCREASE = "LOW_INCREASE"
    HIGH_DECREASE = "HIGH_DECREASE"
    MEDIUM_DECREASE = "MEDIUM_DECREASE"
    LOW_DECREASE = "LOW_DECREASE"


# Multiplicative adjustment applied to forecasts inside an event window
IMPACT_FACTORS = {
    EventImpact.HIGH_INCREASE: 1.5,
    EventImpact.MEDIUM_INCREASE: 1.25,
    EventImpact.LOW_INCREASE: 1.1,
    EventImpact.HIGH_DECREASE: 0.5,
    EventImpact.MEDIUM_DECREASE: 0.75,
    EventImpact.LOW_DECREASE: 0.9,
}


class TrendDirection(Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class RecommendationType(Enum):
    BUDGET_ADJUSTMENT = "BUDGET_ADJUSTMENT"
    COST_OPTIMIZATION = "COST_OPTIMIZATION"
    RESOURCE_PLANNING = "RESOURCE_PLANNING"
    ALERT_THRESHOLD = "ALERT_THRESHOLD"


class Priority(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Effort(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


SUPPORTED_PREDICTION_INTERVALS = (80, 90, 95, 99)


class InsufficientDataError(ValueError):
    """Raised when fewer observations than required are available."""

    def __init__(self, required: int, actual: int):
        self.required = required
        self.actual = actual
        super().__init__(
            f"Insufficient data. Need at least {required} data points, got {actual}"
        )


class ModelFitError(ValueError):
    """Raised when a model cannot be fitted to a (degenerate) series."""


# ============================================================================
# Input data
# ============================================================================

@dataclass(frozen=True)
class ObservationMetadata:
    """Where a cost observation came from."""
    provider: str
    region: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CostObservation:
    """Cost for a single day, optionally broken down by service."""
    timestamp: datetime
    total_cost: float
    service_costs: Dict[str, float] = field(default_factory=dict)
    metadata: Optional[ObservationMetadata] = None


@dataclass(frozen=True)
class BusinessEvent:
    """Known event expected to move costs, e.g. a launch or a migration."""
    name: str
    date: datetime
    impact: EventImpact
    duration_days: int = 0
    description: str = ""

    def __post_init__(self):
        if self.duration_days < 0:
            raise ValueError(f"duration_days must be >= 0, got {self.duration_days}")


@dataclass(frozen=True)
class ForecastConfig:
    """Settings for a single forecast run. Defaults match the sidecar API."""
    forecast_days: int = 30
    prediction_interval_pct: int = 95
    model_type: ModelType = ModelType.AUTO
    seasonality_period_days: int = 7
    include_seasonality: bool = True
    include_business_events: bool = False
    include_growth_trends: bool = True
    min_data_points: int = 14
    outlier_threshold_std_dev: float = 2.0

    def __post_init__(self):
        if self.forecast_days <= 0:
            raise ValueError(f"forecast_days must be positive, got {self.forecast_days}")
        if self.prediction_interval_pct not in SUPPORTED_PREDICTION_INTERVALS:
            raise ValueError(
                f"prediction_interval_pct must be one of {SUPPORTED_PREDICTION_INTERVALS}, "
                f"got {self.prediction_interval_pct}"
            )
        if self.seasonality_period_days <= 0:
            raise ValueError(
                f"seasonality_period_days must be positive, got {self.seasonality_period_days}"
            )
        if self.min_data_points < 1:
            raise ValueError(f"min_data_points must be >= 1, got {self.min_data_points}")
        if self.outlier_threshold_std_dev < 0:
            raise ValueError(
                f"outlier_threshold_std_dev must be >= 0, got {self.outlier_threshold_std_dev}"
            )

    @classmethod
    def from_overrides(cls, overrides: Optional[Dict] = None) -> "ForecastConfig":
        """Build a config from a partial mapping, ignoring unknown keys."""
        overrides = dict(overrides or {})
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in overrides.items() if k in known and v is not None}
        if isinstance(values.get("model_type"), str):
            values["model_type"] = ModelType(values["model_type"].upper())
        return cls(**values)

    @property
    def confidence(self) -> float:
        return self.prediction_interval_pct / 100


# ============================================================================
# Output data
# ============================================================================

@dataclass(frozen=True)
class ForecastedPoint:
    """Forecast for one future day."""
    date: datetime
    predicted_cost: float
    lower_bound: float
    upper_bound: float
    confidence: float


@dataclass
class ModelForecast:
    """Output of one model run, before insights are attached."""
    model_type: ModelType
    points: List[ForecastedPoint]
    model_accuracy: float
    mean_absolute_error: float
    root_mean_square_error: float
    r_squared: float
    fallback_used: bool = False


@dataclass
class CostDriver:
    """Service ranked by its share of total spend."""
    service: str
    impact_score: float
    trend: TrendDirection


@dataclass
class Insights:
    """Trend, volatility and seasonality derived from the cleaned series."""
    trend_direction: TrendDirection
    trend_strength: float
    seasonal_pattern: bool
    growth_rate_pct: float
    volatility: float
    cost_drivers: List[CostDriver] = field(default_factory=list)


@dataclass
class Recommendation:
    """Actionable recommendation derived from a forecast."""
    type: RecommendationType
    title: str
    description: str
    priority: Priority
    implementation_effort: Effort
    timeline: str
    potential_savings: Optional[float] = None


@dataclass
class TimeRange:
    start: datetime
    end: datetime


@dataclass
class DataQuality:
    """Completeness/consistency scores of the raw input series."""
    completeness: float
    consistency: float
    outlier_count: int
    data_points: int
    time_range: Optional[TimeRange]


@dataclass
class ForecastResult:
    """Complete forecast returned to callers and exporters."""
    forecasted_costs: List[ForecastedPoint]
    model_accuracy: float
    mean_absolute_error: float
    root_mean_square_error: float
    r_squared: float
    insights: Insights
    recommendations: List[Recommendation]
    data_quality: DataQuality
    model_used: ModelType


__all__ = [
    "ModelType",
    "EventImpact",
    "IMPACT_FACTORS",
    "TrendDirection",
    "RecommendationType",
    "Priority",
    "Effort",
    "SUPPORTED_PREDICTION_INTERVALS",
    "InsufficientDataError",
    "ModelFitError",
    "ObservationMetadata",
    "CostObservation",
    "BusinessEvent",
    "ForecastConfig",
    "ForecastedPoint",
    "ModelForecast",
    "CostDriver",
    "Insights",
    "Recommendation",
    "TimeRange",
    "DataQuality",
    "ForecastResult",
]
