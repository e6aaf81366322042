"""
Cost Insights Module

Derives descriptive insights from a cleaned cost series:
- Trend direction and strength (first half vs. second half)
- Volatility (coefficient of variation)
- Weekly seasonality (lag-7 autocorrelation)
- Cost drivers (per-service share of spend and trend)
"""

from typing import List, Dict, Optional, Sequence, Tuple
import statistics

from ..domain import CostObservation, CostDriver, Insights, TrendDirection


def _mean(values: Sequence[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def split_halves(values: Sequence[float]) -> Tuple[Sequence[float], Sequence[float]]:
    middle = len(values) // 2
    return values[:middle], values[middle:]


def autocorrelation(values: Sequence[float], lag: int) -> float:
    """Sample autocorrelation at the given lag (0 when undefined)."""
    if len(values) <= lag:
        return 0.0

    mean = statistics.fmean(values)
    numerator = sum(
        (values[i] - mean) * (values[i + lag] - mean)
        for i in range(len(values) - lag)
    )
    denominator = sum((v - mean) ** 2 for v in values)

    return numerator / denominator if denominator != 0 else 0.0


class InsightsGenerator:
    """
    Generates trend, volatility, seasonality and cost-driver insights.

    Thresholds can be overridden through the config dict.
    """

    # Thresholds
    STABLE_GROWTH_PCT = 5.0           # |growth| below this = stable
    FULL_STRENGTH_GROWTH_PCT = 50.0   # growth giving trend strength 1.0
    SEASONALITY_LAG = 7
    MIN_SEASONALITY_POINTS = 14       # Two weeks
    SEASONALITY_THRESHOLD = 0.3
    DRIVER_MIN_IMPACT = 0.01          # Services below 1% of spend are ignored
    DRIVER_STABLE_CHANGE = 0.10
    MAX_COST_DRIVERS = 10

    def __init__(self, config: Optional[Dict] = None):
        """Initialize with optional configuration overrides."""
        self.config = config or {}
        self._apply_config()

    def _apply_config(self):
        """Apply configuration overrides."""
        if "stable_growth_pct" in self.config:
            self.STABLE_GROWTH_PCT = self.config["stable_growth_pct"]
        if "seasonality_threshold" in self.config:
            self.SEASONALITY_THRESHOLD = self.config["seasonality_threshold"]
        if "max_cost_drivers" in self.config:
            self.MAX_COST_DRIVERS = self.config["max_cost_drivers"]

    def generate(self, series: List[CostObservation]) -> Insights:
        costs = [point.total_cost for point in series]

        growth_rate = self.growth_rate_pct(costs)
        if abs(growth_rate) < self.STABLE_GROWTH_PCT:
            direction = TrendDirection.STABLE
        elif growth_rate > 0:
            direction = TrendDirection.INCREASING
        else:
            direction = TrendDirection.DECREASING

        return Insights(
            trend_direction=direction,
            trend_strength=min(1.0, abs(growth_rate) / self.FULL_STRENGTH_GROWTH_PCT),
            seasonal_pattern=self.detect_seasonality(costs),
            growth_rate_pct=growth_rate,
            volatility=self.volatility(costs),
            cost_drivers=self.analyze_cost_drivers(series),
        )

    def growth_rate_pct(self, costs: Sequence[float]) -> float:
        """Percent change of the second-half average over the first-half average."""
        first, second = split_halves(costs)
        first_avg, second_avg = _mean(first), _mean(second)

        # Growth from nothing has no ratio; report it as doubling
        if first_avg == 0:
            return 100.0 if second_avg > 0 else 0.0

        return (second_avg - first_avg) / first_avg * 100

    def volatility(self, costs: Sequence[float]) -> float:
        """Coefficient of variation clamped to [0, 1]."""
        if not costs:
            return 0.0
        mean = statistics.fmean(costs)
        if mean == 0:
            return 0.0
        return max(0.0, min(1.0, statistics.pstdev(costs) / mean))

    def detect_seasonality(self, costs: Sequence[float]) -> bool:
        if len(costs) < self.MIN_SEASONALITY_POINTS:
            return False
        return autocorrelation(costs, self.SEASONALITY_LAG) > self.SEASONALITY_THRESHOLD

    def analyze_cost_drivers(self, series: List[CostObservation]) -> List[CostDriver]:
        """Rank services by share of total spend."""
        total_cost = sum(point.total_cost for point in series)
        if total_cost == 0:
            return []

        services = list(dict.fromkeys(s for point in series for s in point.service_costs))

        drivers = []
        for service in services:
            service_costs = [point.service_costs.get(service, 0) for point in series]
            impact_score = sum(service_costs) / total_cost

            if impact_score > self.DRIVER_MIN_IMPACT:
                drivers.append(CostDriver(
                    service=service,
                    impact_score=impact_score,
                    trend=self._service_trend(service_costs),
                ))

        drivers.sort(key=lambda d: d.impact_score, reverse=True)
        return drivers[:self.MAX_COST_DRIVERS]

    def _service_trend(self, service_costs: Sequence[float]) -> TrendDirection:
        first, second = split_halves(service_costs)
        first_avg, second_avg = _mean(first), _mean(second)

        if first_avg == 0:
            return TrendDirection.INCREASING if second_avg > 0 else TrendDirection.STABLE

        change = (second_avg - first_avg) / first_avg
        if abs(change) < self.DRIVER_STABLE_CHANGE:
            return TrendDirection.STABLE
        if change > 0:
            return TrendDirection.INCREASING
        return TrendDirection.DECREASING


__all__ = ["InsightsGenerator", "autocorrelation", "split_halves"]
