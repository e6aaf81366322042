"""
Conversion of raw cost records into CostObservation series.

Accepts the loosely-typed records produced by billing exports and provider
clients, e.g. {"date": "YYYY-MM-DD", "cost": float, "service_breakdown": {...}}.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pandas as pd

from ..domain import CostObservation, ObservationMetadata

logger = logging.getLogger(__name__)

DATE_COLUMNS = ['date', 'ds', 'timestamp', 'time']
COST_COLUMNS = ['cost', 'total_cost', 'y', 'value', 'amount']
SERVICE_COLUMNS = ['service_breakdown', 'service_costs']


def naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to UTC and drop the zone; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _find_column(df: pd.DataFrame, candidates: List[str]) -> Optional[str]:
    for col in candidates:
        if col in df.columns:
            return col
    return None


def observations_from_records(
    records: List[Dict],
    provider: Optional[str] = None,
    region: Optional[str] = None,
) -> List[CostObservation]:
    """
    Convert cost records to observations sorted by timestamp.

    Args:
        records: List of dicts with a date column, a cost column and an
            optional per-service breakdown
        provider: Cloud provider recorded in each observation's metadata
        region: Optional region recorded alongside the provider

    Returns:
        Observations sorted ascending, keeping the last record per timestamp
    """
    if not records:
        return []

    df = pd.DataFrame(records)

    date_col = _find_column(df, DATE_COLUMNS)
    cost_col = _find_column(df, COST_COLUMNS)
    if date_col is None or cost_col is None:
        raise ValueError("Data must contain date and cost columns")
    service_col = _find_column(df, SERVICE_COLUMNS)

    df = df.rename(columns={date_col: 'ds', cost_col: 'y'})
    # Mixed ISO forms are allowed; zoned timestamps are stored as naive UTC
    df['ds'] = pd.to_datetime(df['ds'], format='ISO8601', utc=True).dt.tz_localize(None)
    df['y'] = df['y'].astype(float)

    if (df['y'] < 0).any():
        raise ValueError("Cost values must be non-negative")

    df = df.sort_values('ds', kind='stable').reset_index(drop=True)
    df = df.drop_duplicates(subset=['ds'], keep='last')

    metadata = ObservationMetadata(provider=provider, region=region) if provider else None

    observations = []
    for row in df.to_dict('records'):
        breakdown = row.get(service_col) if service_col else None
        service_costs = {
            service: float(cost) for service, cost in breakdown.items()
        } if isinstance(breakdown, dict) else {}

        observations.append(CostObservation(
            timestamp=row['ds'].to_pydatetime(),
            total_cost=float(row['y']),
            service_costs=service_costs,
            metadata=metadata,
        ))

    logger.debug(f"Loaded {len(observations)} observations from {len(records)} records")
    return observations


def from_cost_breakdown(
    breakdowns: List[Tuple[datetime, Dict]],
    provider: str,
) -> List[CostObservation]:
    """
    Convert provider cost breakdowns to observations.

    Each breakdown carries "totals" and "totals_by_service" sections keyed by
    period; the month-to-date figure is preferred over the 7-day one.
    """
    observations = []
    for date, breakdown in breakdowns:
        totals = breakdown.get('totals', {})
        by_service = breakdown.get('totals_by_service', {})

        observations.append(CostObservation(
            timestamp=naive_utc(date),
            total_cost=float(totals.get('this_month') or totals.get('last_7_days') or 0),
            service_costs=dict(by_service.get('this_month') or by_service.get('last_7_days') or {}),
            metadata=ObservationMetadata(provider=provider, region='unknown'),
        ))

    return observations


__all__ = ['observations_from_records', 'from_cost_breakdown', 'naive_utc']
