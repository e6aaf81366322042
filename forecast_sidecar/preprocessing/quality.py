"""Data quality scoring for raw cost series."""

from typing import List
import math

from ..domain import CostObservation, DataQuality, TimeRange
from .cleaner import days_between, is_outlier, cost_mean_and_std


class DataQualityAssessor:
    """Scores completeness, consistency and outliers of the unfiltered input."""

    GAP_THRESHOLD_DAYS = 1.5

    def __init__(self, outlier_threshold_std_dev: float = 2.0):
        self.outlier_threshold_std_dev = outlier_threshold_std_dev

    def assess(self, series: List[CostObservation]) -> DataQuality:
        if not series:
            return DataQuality(
                completeness=0,
                consistency=0,
                outlier_count=0,
                data_points=0,
                time_range=None,
            )

        total_points = len(series)
        expected_points = math.floor(days_between(series[0], series[-1])) + 1
        completeness = min(1.0, total_points / expected_points)

        gaps = sum(
            1 for previous, current in zip(series, series[1:])
            if days_between(previous, current) > self.GAP_THRESHOLD_DAYS
        )
        consistency = max(0.0, 1 - gaps / total_points)

        mean, std_dev = cost_mean_and_std(series)
        outlier_count = sum(
            1 for point in series
            if is_outlier(point.total_cost, mean, std_dev, self.outlier_threshold_std_dev)
        )

        return DataQuality(
            completeness=completeness,
            consistency=consistency,
            outlier_count=outlier_count,
            data_points=total_points,
            time_range=TimeRange(start=series[0].timestamp, end=series[-1].timestamp),
        )
