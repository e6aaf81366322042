"""
Forecast Recommendation Engine

Turns a forecast and its insights into typed recommendations:
- Budget adjustment when the forecast runs well above recent spend
- Cost optimization review when spend is volatile
- Resource planning when costs trend upward
- Alert threshold from the forecast upper bound (always emitted)

Each check is independent; several can fire for the same forecast.
"""

from typing import List, Dict, Optional
import statistics

from ..domain import (
    CostObservation,
    Effort,
    ForecastedPoint,
    Insights,
    Priority,
    Recommendation,
    RecommendationType,
    TrendDirection,
)


class RecommendationEngine:
    """Generates budget, optimization, planning and alerting recommendations."""

    # Thresholds
    WINDOW_DAYS = 30
    BUDGET_INCREASE_RATIO = 1.2   # Forecast 20% above recent actuals
    VOLATILITY_THRESHOLD = 0.3
    PLANNING_SAVINGS_RATE = 0.15  # Savings from planning ahead for growth

    def __init__(self, config: Optional[Dict] = None, include_growth_trends: bool = True):
        """Initialize with optional configuration overrides."""
        self.config = config or {}
        self.include_growth_trends = include_growth_trends
        self._apply_config()

    def _apply_config(self):
        """Apply configuration overrides."""
        if "budget_increase_ratio" in self.config:
            self.BUDGET_INCREASE_RATIO = self.config["budget_increase_ratio"]
        if "volatility_threshold" in self.config:
            self.VOLATILITY_THRESHOLD = self.config["volatility_threshold"]

    def generate(
        self,
        forecast: List[ForecastedPoint],
        insights: Insights,
        history: List[CostObservation],
    ) -> List[Recommendation]:
        """
        Generate recommendations for a forecast.

        Args:
            forecast: Forecasted points (after any business event adjustment)
            insights: Insights derived from the cleaned history
            history: Cleaned historical observations

        Returns:
            Recommendations, the alert threshold one always last
        """
        recommendations = []

        current_avg = self._average([p.total_cost for p in history[-self.WINDOW_DAYS:]])
        forecast_avg = self._average([p.predicted_cost for p in forecast[:self.WINDOW_DAYS]])

        if forecast_avg > current_avg * self.BUDGET_INCREASE_RATIO:
            increase_pct = (self.BUDGET_INCREASE_RATIO - 1) * 100
            recommendations.append(Recommendation(
                type=RecommendationType.BUDGET_ADJUSTMENT,
                title="Increase Budget",
                description=(
                    f"Forecasted costs are more than {increase_pct:.0f}% higher than the current "
                    f"average. Consider increasing the daily budget by ${forecast_avg - current_avg:.2f}."
                ),
                priority=Priority.HIGH,
                implementation_effort=Effort.LOW,
                timeline="Immediate",
            ))

        if insights.volatility > self.VOLATILITY_THRESHOLD:
            recommendations.append(Recommendation(
                type=RecommendationType.COST_OPTIMIZATION,
                title="Investigate Cost Volatility",
                description=(
                    f"High cost volatility detected ({insights.volatility:.0%} of average spend). "
                    "Review resource scaling policies and usage patterns."
                ),
                priority=Priority.MEDIUM,
                implementation_effort=Effort.MEDIUM,
                timeline="1-2 weeks",
            ))

        if self.include_growth_trends and insights.trend_direction == TrendDirection.INCREASING:
            projected_increase = forecast_avg - current_avg
            recommendations.append(Recommendation(
                type=RecommendationType.RESOURCE_PLANNING,
                title="Plan for Growing Infrastructure",
                description=(
                    f"Upward cost trend detected. Plan for {insights.growth_rate_pct:.1f}% "
                    "growth over the analysis period."
                ),
                priority=Priority.MEDIUM,
                implementation_effort=Effort.HIGH,
                timeline="2-4 weeks",
                potential_savings=projected_increase * self.PLANNING_SAVINGS_RATE,
            ))

        threshold = max((p.upper_bound for p in forecast), default=0.0)
        recommendations.append(Recommendation(
            type=RecommendationType.ALERT_THRESHOLD,
            title="Update Alert Thresholds",
            description=f"Set cost alert threshold to ${threshold:.2f} based on forecast upper bound.",
            priority=Priority.LOW,
            implementation_effort=Effort.LOW,
            timeline="Immediate",
        ))

        return recommendations

    def _average(self, values: List[float]) -> float:
        return statistics.fmean(values) if values else 0.0


__all__ = ["RecommendationEngine"]
