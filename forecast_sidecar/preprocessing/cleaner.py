"""
Cost Series Preprocessing

Cleans a raw daily cost series before it is handed to the forecasting
models:
- Outlier removal (z-score against population standard deviation)
- Gap interpolation (daily spacing, per-service costs included)
- Moving-average smoothing when the series is noisy
"""

from dataclasses import replace
from datetime import timedelta
from typing import List, Dict
import logging
import math
import statistics

from ..domain import CostObservation

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def days_between(earlier: CostObservation, later: CostObservation) -> float:
    """Fractional number of days between two observations."""
    return (later.timestamp - earlier.timestamp).total_seconds() / SECONDS_PER_DAY


def is_outlier(cost: float, mean: float, std_dev: float, threshold: float) -> bool:
    return abs(cost - mean) > threshold * std_dev


def cost_mean_and_std(series: List[CostObservation]):
    """Mean and population standard deviation of total_cost."""
    costs = [point.total_cost for point in series]
    return statistics.fmean(costs), statistics.pstdev(costs)


class DataPreprocessor:
    """
    Cleans cost observations for forecasting.

    The pipeline order is fixed: remove outliers, interpolate gaps, then
    smooth only if the result is noisy. No method mutates its input.
    """

    GAP_THRESHOLD_DAYS = 1.5
    NOISE_THRESHOLD = 0.20  # Average relative day-over-day change
    DEFAULT_WINDOW_SIZE = 3

    def __init__(self, outlier_threshold_std_dev: float = 2.0):
        self.outlier_threshold_std_dev = outlier_threshold_std_dev

    def preprocess(self, series: List[CostObservation]) -> List[CostObservation]:
        """Run the full cleaning pipeline on a time-sorted series."""
        data = self.remove_outliers(series, self.outlier_threshold_std_dev)
        removed = len(series) - len(data)

        interpolated = self.interpolate_missing_data(data)
        inserted = len(interpolated) - len(data)

        noisy = self.detect_noise(interpolated)
        if noisy:
            interpolated = self.smooth(interpolated)

        logger.info(
            f"Preprocessed {len(series)} observations: {removed} outliers removed, "
            f"{inserted} points interpolated, smoothing={'on' if noisy else 'off'}"
        )
        return interpolated

    def remove_outliers(
        self,
        series: List[CostObservation],
        threshold_std_dev: float,
    ) -> List[CostObservation]:
        """Drop points more than threshold standard deviations from the mean."""
        if not series:
            return []

        mean, std_dev = cost_mean_and_std(series)
        return [
            point for point in series
            if not is_outlier(point.total_cost, mean, std_dev, threshold_std_dev)
        ]

    def interpolate_missing_data(self, series: List[CostObservation]) -> List[CostObservation]:
        """Fill gaps longer than 1.5 days with linearly interpolated daily points."""
        if len(series) < 2:
            return list(series)

        result = []
        for current, following in zip(series, series[1:]):
            result.append(current)

            gap = days_between(current, following)
            if gap <= self.GAP_THRESHOLD_DAYS:
                continue

            steps = math.floor(gap)
            cost_diff = following.total_cost - current.total_cost
            for j in range(1, steps):
                ratio = j / steps
                result.append(CostObservation(
                    timestamp=current.timestamp + timedelta(days=j),
                    total_cost=current.total_cost + cost_diff * ratio,
                    service_costs=self._interpolate_service_costs(
                        current.service_costs, following.service_costs, ratio
                    ),
                    metadata=current.metadata,
                ))

        result.append(series[-1])
        return result

    def _interpolate_service_costs(
        self,
        start: Dict[str, float],
        end: Dict[str, float],
        ratio: float,
    ) -> Dict[str, float]:
        services = list(dict.fromkeys([*start, *end]))
        result = {}
        for service in services:
            start_cost = start.get(service, 0)
            end_cost = end.get(service, 0)
            result[service] = start_cost + (end_cost - start_cost) * ratio
        return result

    def detect_noise(self, series: List[CostObservation]) -> bool:
        """True when the average relative day-over-day change exceeds 20%."""
        if len(series) < 3:
            return False

        # Relative change is undefined after a zero-cost day
        changes = [
            abs(current.total_cost - previous.total_cost) / previous.total_cost
            for previous, current in zip(series, series[1:])
            if previous.total_cost != 0
        ]
        if not changes:
            return False

        return statistics.fmean(changes) > self.NOISE_THRESHOLD

    def smooth(
        self,
        series: List[CostObservation],
        window_size: int = DEFAULT_WINDOW_SIZE,
    ) -> List[CostObservation]:
        """Centred moving average; edge points are left as they are."""
        if len(series) <= window_size:
            return list(series)

        half = window_size // 2
        result = []
        for i, point in enumerate(series):
            if i < half or i >= len(series) - half:
                result.append(point)
                continue

            start = i - half
            window = series[start:start + window_size]
            result.append(replace(
                point,
                total_cost=statistics.fmean(p.total_cost for p in window),
                service_costs=self._average_service_costs([p.service_costs for p in window]),
            ))

        return result

    def _average_service_costs(self, service_costs: List[Dict[str, float]]) -> Dict[str, float]:
        services = list(dict.fromkeys(s for costs in service_costs for s in costs))
        return {
            service: statistics.fmean(costs.get(service, 0) for costs in service_costs)
            for service in services
        }


__all__ = [
    "DataPreprocessor",
    "days_between",
    "is_outlier",
    "cost_mean_and_std",
]
