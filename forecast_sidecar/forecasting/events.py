"""Adjust forecasts for known business events (launches, migrations, sales)."""

from dataclasses import replace
from datetime import timedelta
from typing import List, Sequence

from ..domain import BusinessEvent, ForecastedPoint, IMPACT_FACTORS


class BusinessEventAdjuster:
    """
    Scales forecasted points that fall inside an event window.

    Overlapping events compound multiplicatively in the order they were
    registered.
    """

    def __init__(self, events: Sequence[BusinessEvent]):
        self.events = list(events)

    def adjustment_factor(self, date) -> float:
        factor = 1.0
        for event in self.events:
            window_end = event.date + timedelta(days=event.duration_days)
            if event.date <= date <= window_end:
                factor *= IMPACT_FACTORS[event.impact]
        return factor

    def apply(self, points: List[ForecastedPoint]) -> List[ForecastedPoint]:
        adjusted = []
        for point in points:
            factor = self.adjustment_factor(point.date)
            adjusted.append(replace(
                point,
                predicted_cost=point.predicted_cost * factor,
                lower_bound=point.lower_bound * factor,
                upper_bound=point.upper_bound * factor,
            ))
        return adjusted
