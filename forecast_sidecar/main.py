"""
FinOpsMind Forecast Sidecar - API

FastAPI application providing cost forecasting:
- POST /forecast - Forecast total cost with insights and recommendations
- POST /forecast/services - Forecast each service separately
- POST /data-quality - Score the quality of a cost series
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Dict, Optional
from datetime import datetime, timezone
from concurrent import futures
import logging
import os

from . import __version__
from .domain import (
    BusinessEvent,
    EventImpact,
    ForecastConfig,
    ForecastResult,
    ModelType,
)
from .forecasting import ForecastingSession, generate_forecast, generate_service_forecasts
from .preprocessing import DataQualityAssessor, naive_utc, observations_from_records

# Service settings
HOST = os.getenv("FORECAST_SIDECAR_HOST", "0.0.0.0")
PORT = int(os.getenv("FORECAST_SIDECAR_PORT", "8082"))
LOG_LEVEL = os.getenv("FORECAST_SIDECAR_LOG_LEVEL", "info")
MAX_WORKERS = int(os.getenv("FORECAST_MAX_WORKERS", "0")) or None
USE_PROCESSES = os.getenv("FORECAST_WORKER_MODE", "process") == "process"

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="FinOpsMind Forecast Sidecar",
    description="Cost forecasting, insights and budget recommendations",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Request/Response Models
# ============================================================================

class CamelModel(BaseModel):
    """Accepts and emits camelCase field names (snake_case also accepted)."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=()
    )


class CostDataPoint(CamelModel):
    """Single day of cost."""
    date: str = Field(..., description="Date in YYYY-MM-DD format")
    cost: float = Field(..., description="Total cost for the day", ge=0)
    service_breakdown: Optional[Dict[str, float]] = Field(
        None, description="Optional breakdown by service"
    )


class BusinessEventRequest(CamelModel):
    """Known business event expected to move costs."""
    name: str
    date: datetime
    impact: EventImpact
    duration_days: int = Field(0, ge=0)
    description: str = ""


class ForecastConfigRequest(CamelModel):
    """Partial forecast configuration; omitted fields keep their defaults."""
    forecast_days: Optional[int] = Field(None, ge=1)
    prediction_interval_pct: Optional[int] = None
    model_type: Optional[ModelType] = None
    seasonality_period_days: Optional[int] = Field(None, ge=1)
    include_seasonality: Optional[bool] = None
    include_business_events: Optional[bool] = None
    include_growth_trends: Optional[bool] = None
    min_data_points: Optional[int] = Field(None, ge=1)
    outlier_threshold_std_dev: Optional[float] = Field(None, ge=0)


class ForecastRequest(CamelModel):
    """Request for a cost forecast."""
    historical_data: List[CostDataPoint]
    config: Optional[ForecastConfigRequest] = None
    business_events: List[BusinessEventRequest] = []
    provider: Optional[str] = None


class ServiceForecastRequest(ForecastRequest):
    """Request for per-service forecasts."""
    timeout_seconds: Optional[float] = Field(None, gt=0)


class DataQualityRequest(CamelModel):
    """Request to score a cost series."""
    historical_data: List[CostDataPoint]
    outlier_threshold_std_dev: float = Field(2.0, ge=0)


class ForecastPointResponse(CamelModel):
    date: datetime
    predicted_cost: float
    lower_bound: float
    upper_bound: float
    confidence: float


class CostDriverResponse(CamelModel):
    service: str
    impact_score: float
    trend: str


class InsightsResponse(CamelModel):
    trend_direction: str
    trend_strength: float
    seasonal_pattern: bool
    growth_rate_pct: float
    volatility: float
    cost_drivers: List[CostDriverResponse]


class RecommendationResponse(CamelModel):
    type: str
    title: str
    description: str
    priority: str
    implementation_effort: str
    timeline: str
    potential_savings: Optional[float] = None


class TimeRangeResponse(CamelModel):
    start: datetime
    end: datetime


class DataQualityResponse(CamelModel):
    completeness: float
    consistency: float
    outlier_count: int
    data_points: int
    time_range: Optional[TimeRangeResponse]


class ForecastResponse(CamelModel):
    """Cost forecast response."""
    forecasted_costs: List[ForecastPointResponse]
    model_accuracy: float
    mean_absolute_error: float
    root_mean_square_error: float
    r_squared: float
    insights: InsightsResponse
    recommendations: List[RecommendationResponse]
    data_quality: DataQualityResponse
    model_used: str


class ServiceForecastResponse(CamelModel):
    """Per-service forecast response."""
    forecasts: Dict[str, ForecastResponse]
    skipped_services: List[str]


# ============================================================================
# Conversion helpers
# ============================================================================

def _build_session(request: ForecastRequest) -> ForecastingSession:
    records = [
        {"date": dp.date, "cost": dp.cost, "service_breakdown": dp.service_breakdown or {}}
        for dp in request.historical_data
    ]
    overrides = request.config.model_dump(exclude_none=True) if request.config else {}
    events = [
        BusinessEvent(
            name=e.name,
            date=naive_utc(e.date),
            impact=e.impact,
            duration_days=e.duration_days,
            description=e.description,
        )
        for e in request.business_events
    ]

    return (
        ForecastingSession(config=ForecastConfig.from_overrides(overrides))
        .with_observations(observations_from_records(records, provider=request.provider))
        .with_business_events(events)
    )


def _data_quality_response(quality) -> DataQualityResponse:
    return DataQualityResponse(
        completeness=quality.completeness,
        consistency=quality.consistency,
        outlier_count=quality.outlier_count,
        data_points=quality.data_points,
        time_range=TimeRangeResponse(
            start=quality.time_range.start, end=quality.time_range.end
        ) if quality.time_range else None,
    )


def _forecast_response(result: ForecastResult) -> ForecastResponse:
    return ForecastResponse(
        forecasted_costs=[
            ForecastPointResponse(
                date=p.date,
                predicted_cost=p.predicted_cost,
                lower_bound=p.lower_bound,
                upper_bound=p.upper_bound,
                confidence=p.confidence,
            )
            for p in result.forecasted_costs
        ],
        model_accuracy=result.model_accuracy,
        mean_absolute_error=result.mean_absolute_error,
        root_mean_square_error=result.root_mean_square_error,
        r_squared=result.r_squared,
        insights=InsightsResponse(
            trend_direction=result.insights.trend_direction.value,
            trend_strength=result.insights.trend_strength,
            seasonal_pattern=result.insights.seasonal_pattern,
            growth_rate_pct=result.insights.growth_rate_pct,
            volatility=result.insights.volatility,
            cost_drivers=[
                CostDriverResponse(service=d.service, impact_score=d.impact_score, trend=d.trend.value)
                for d in result.insights.cost_drivers
            ],
        ),
        recommendations=[
            RecommendationResponse(
                type=r.type.value,
                title=r.title,
                description=r.description,
                priority=r.priority.value,
                implementation_effort=r.implementation_effort.value,
                timeline=r.timeline,
                potential_savings=r.potential_savings,
            )
            for r in result.recommendations
        ],
        data_quality=_data_quality_response(result.data_quality),
        model_used=result.model_used.value,
    )


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "FinOpsMind Forecast Sidecar",
        "version": __version__,
        "status": "healthy",
        "endpoints": [
            "/forecast",
            "/forecast/services",
            "/data-quality",
        ],
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "preprocessing": "ok",
            "forecasting": "ok",
            "analysis": "ok",
        },
    }


@app.post("/forecast", response_model=ForecastResponse)
def forecast(request: ForecastRequest):
    """
    Forecast daily cost for the requested horizon.

    Cleans the history, picks a model (or runs the requested one), applies
    business events and attaches insights, recommendations and data quality.
    """
    try:
        session = _build_session(request)
        logger.info(f"Forecast requested for {len(session.observations)} data points")

        result = generate_forecast(session)
        return _forecast_response(result)

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Forecast error: {e}")
        raise HTTPException(status_code=500, detail=f"Forecast generation failed: {e}")


@app.post("/forecast/services", response_model=ServiceForecastResponse)
def forecast_services(request: ServiceForecastRequest):
    """
    Forecast each service in the breakdown separately.

    Services with too few non-zero days are reported as skipped.
    """
    try:
        session = _build_session(request)
        results = generate_service_forecasts(
            session,
            max_workers=MAX_WORKERS,
            timeout=request.timeout_seconds,
            use_processes=USE_PROCESSES,
        )

        return ServiceForecastResponse(
            forecasts={service: _forecast_response(r) for service, r in results.items()},
            skipped_services=[s for s in session.services() if s not in results],
        )

    except futures.TimeoutError:
        raise HTTPException(status_code=504, detail="Service forecasts timed out")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Service forecast error: {e}")
        raise HTTPException(status_code=500, detail=f"Service forecast generation failed: {e}")


@app.post("/data-quality", response_model=DataQualityResponse)
async def data_quality(request: DataQualityRequest):
    """Score completeness, consistency and outliers of a cost series."""
    try:
        records = [{"date": dp.date, "cost": dp.cost} for dp in request.historical_data]
        observations = observations_from_records(records)

        quality = DataQualityAssessor(request.outlier_threshold_std_dev).assess(observations)
        return _data_quality_response(quality)

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Data quality error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# Run with uvicorn
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "forecast_sidecar.main:app",
        host=HOST,
        port=PORT,
        reload=os.getenv("ENVIRONMENT", "development") == "development",
        log_level=LOG_LEVEL,
    )
