"""
Tests for cost series preprocessing, data quality and record loading

Run with: pytest tests/test_preprocessing.py -v
"""

import pytest
from datetime import datetime, timedelta, timezone

from forecast_sidecar.domain import CostObservation, ObservationMetadata
from forecast_sidecar.preprocessing import (
    DataPreprocessor,
    DataQualityAssessor,
    observations_from_records,
    from_cost_breakdown,
    naive_utc,
)

from builders import BASE_DATE, daily_series, weekly_series


def at_days(costs_by_day: dict) -> list:
    """Observations at the given day offsets."""
    return [
        CostObservation(timestamp=BASE_DATE + timedelta(days=day), total_cost=cost)
        for day, cost in costs_by_day.items()
    ]


# ============================================================================
# Outlier Removal Tests
# ============================================================================

class TestOutlierRemoval:
    """Tests for z-score outlier removal."""

    def test_weekly_spikes_removed_at_two_std_devs(self):
        """Spikes 2.45 std devs from the mean should be dropped at the default threshold."""
        series = weekly_series(4)

        cleaned = DataPreprocessor().remove_outliers(series, 2.0)

        assert len(cleaned) == 24
        assert all(p.total_cost == 100.0 for p in cleaned)

    def test_weekly_spikes_kept_at_three_std_devs(self):
        """A looser threshold should keep the same spikes."""
        series = weekly_series(4)

        cleaned = DataPreprocessor().remove_outliers(series, 3.0)

        assert len(cleaned) == 28

    def test_input_not_mutated(self):
        """Removal should return a filtered copy."""
        series = weekly_series(4)
        original = list(series)

        DataPreprocessor().remove_outliers(series, 2.0)

        assert series == original

    def test_empty_series(self):
        """Empty input yields empty output."""
        assert DataPreprocessor().remove_outliers([], 2.0) == []


# ============================================================================
# Gap Interpolation Tests
# ============================================================================

class TestInterpolation:
    """Tests for gap interpolation."""

    def test_three_day_gap_filled_linearly(self):
        """A gap from day 0 to day 3 should be filled with days 1 and 2."""
        series = at_days({0: 10.0, 3: 40.0})

        result = DataPreprocessor().interpolate_missing_data(series)

        assert [p.total_cost for p in result] == pytest.approx([10.0, 20.0, 30.0, 40.0])
        assert [p.timestamp for p in result] == [BASE_DATE + timedelta(days=d) for d in range(4)]

    def test_short_gaps_left_alone(self):
        """Gaps up to 1.5 days are not interpolated."""
        series = [
            CostObservation(timestamp=BASE_DATE, total_cost=10.0),
            CostObservation(timestamp=BASE_DATE + timedelta(hours=36), total_cost=20.0),
        ]

        result = DataPreprocessor().interpolate_missing_data(series)

        assert len(result) == 2

    def test_service_costs_interpolated(self):
        """Per-service costs follow the same line; missing services count as zero."""
        series = [
            CostObservation(timestamp=BASE_DATE, total_cost=10.0,
                            service_costs={"ec2": 10.0}),
            CostObservation(timestamp=BASE_DATE + timedelta(days=2), total_cost=30.0,
                            service_costs={"ec2": 20.0, "s3": 10.0}),
        ]

        result = DataPreprocessor().interpolate_missing_data(series)

        assert len(result) == 3
        assert result[1].service_costs == pytest.approx({"ec2": 15.0, "s3": 5.0})

    def test_synthetic_points_keep_left_metadata(self):
        """Inserted points carry the metadata of the observation before the gap."""
        metadata = ObservationMetadata(provider="aws", region="us-east-1")
        series = [
            CostObservation(timestamp=BASE_DATE, total_cost=10.0, metadata=metadata),
            CostObservation(timestamp=BASE_DATE + timedelta(days=2), total_cost=30.0),
        ]

        result = DataPreprocessor().interpolate_missing_data(series)

        assert result[1].metadata == metadata


# ============================================================================
# Noise & Smoothing Tests
# ============================================================================

class TestSmoothing:
    """Tests for noise detection and moving-average smoothing."""

    def test_alternating_series_is_noisy(self):
        """A series jumping 50% every day should be noisy."""
        series = daily_series(10, lambda i: 100.0 if i % 2 == 0 else 150.0)

        assert DataPreprocessor().detect_noise(series)

    def test_flat_series_is_not_noisy(self):
        assert not DataPreprocessor().detect_noise(daily_series(10))

    def test_short_series_is_not_noisy(self):
        """Fewer than three points are never noisy."""
        series = daily_series(2, lambda i: 10.0 if i == 0 else 100.0)

        assert not DataPreprocessor().detect_noise(series)

    def test_zero_cost_days_skipped(self):
        """Changes after a zero-cost day are left out of the average."""
        series = daily_series(4, lambda i: [0.0, 100.0, 101.0, 102.0][i])

        assert not DataPreprocessor().detect_noise(series)

    def test_smooth_keeps_edges(self):
        """Window of 3 averages interior points and leaves both ends untouched."""
        series = daily_series(5, lambda i: [10.0, 20.0, 60.0, 20.0, 10.0][i])

        smoothed = DataPreprocessor().smooth(series)

        assert [p.total_cost for p in smoothed] == pytest.approx([10.0, 30.0, 100 / 3, 30.0, 10.0])
        assert smoothed[0] is series[0]
        assert smoothed[-1] is series[-1]

    def test_smooth_short_series_unchanged(self):
        """Series no longer than the window are returned as-is."""
        series = daily_series(3, lambda i: [10.0, 50.0, 10.0][i])

        assert DataPreprocessor().smooth(series) == series

    def test_preprocess_pipeline_smooths_noisy_series(self):
        """The full pipeline should smooth an alternating series."""
        series = daily_series(10, lambda i: 100.0 if i % 2 == 0 else 150.0)

        cleaned = DataPreprocessor().preprocess(series)

        assert len(cleaned) == 10
        assert cleaned[1].total_cost == pytest.approx(350 / 3)


# ============================================================================
# Data Quality Tests
# ============================================================================

class TestDataQuality:
    """Tests for the data quality assessor."""

    def test_complete_series(self):
        """A gap-free daily series is complete and consistent."""
        quality = DataQualityAssessor().assess(daily_series(14))

        assert quality.completeness == 1.0
        assert quality.consistency == 1.0
        assert quality.outlier_count == 0
        assert quality.data_points == 14
        assert quality.time_range.start == BASE_DATE
        assert quality.time_range.end == BASE_DATE + timedelta(days=13)

    def test_series_with_gap(self):
        """Days 0, 1, 2, 5: four of six expected points and one gap."""
        series = at_days({0: 100.0, 1: 100.0, 2: 100.0, 5: 100.0})

        quality = DataQualityAssessor().assess(series)

        assert quality.completeness == pytest.approx(4 / 6)
        assert quality.consistency == pytest.approx(0.75)

    def test_outliers_counted_on_raw_series(self):
        """Weekly spikes count as outliers at two standard deviations."""
        quality = DataQualityAssessor(2.0).assess(weekly_series(4))

        assert quality.outlier_count == 4

    def test_empty_series(self):
        quality = DataQualityAssessor().assess([])

        assert quality.data_points == 0
        assert quality.completeness == 0
        assert quality.time_range is None


# ============================================================================
# Record Loader Tests
# ============================================================================

class TestRecordLoader:
    """Tests for converting raw records to observations."""

    def test_flexible_column_names(self):
        """Prophet-style ds/y columns should be accepted."""
        records = [
            {"ds": "2024-01-02", "y": 20.0},
            {"ds": "2024-01-01", "y": 10.0},
        ]

        observations = observations_from_records(records)

        assert [o.total_cost for o in observations] == [10.0, 20.0]
        assert observations[0].timestamp == datetime(2024, 1, 1)

    def test_duplicate_dates_keep_last(self):
        records = [
            {"date": "2024-01-01", "cost": 10.0},
            {"date": "2024-01-01", "cost": 12.0},
            {"date": "2024-01-02", "cost": 20.0},
        ]

        observations = observations_from_records(records)

        assert len(observations) == 2
        assert observations[0].total_cost == 12.0

    def test_service_breakdown_and_provider(self):
        records = [
            {"date": "2024-01-01", "cost": 30.0, "service_breakdown": {"ec2": 20, "s3": 10}},
        ]

        observations = observations_from_records(records, provider="aws", region="eu-west-1")

        assert observations[0].service_costs == {"ec2": 20.0, "s3": 10.0}
        assert observations[0].metadata.provider == "aws"
        assert observations[0].metadata.region == "eu-west-1"

    def test_missing_cost_column(self):
        """Records without a cost column should be rejected."""
        with pytest.raises(ValueError, match="date and cost"):
            observations_from_records([{"date": "2024-01-01", "spend": 10.0}])

    def test_negative_cost_rejected(self):
        with pytest.raises(ValueError):
            observations_from_records([{"date": "2024-01-01", "cost": -5.0}])

    def test_mixed_iso_date_forms(self):
        """Plain dates and full timestamps can appear in the same batch."""
        records = [
            {"date": "2024-01-01", "cost": 10.0},
            {"date": "2024-01-02T00:00:00", "cost": 20.0},
            {"date": "2024-01-03", "cost": 30.0},
        ]

        observations = observations_from_records(records)

        assert [o.timestamp for o in observations] == [datetime(2024, 1, d) for d in (1, 2, 3)]

    def test_zoned_dates_stored_as_naive_utc(self):
        records = [
            {"date": "2024-01-01", "cost": 10.0},
            {"date": "2024-01-02T02:00:00+02:00", "cost": 20.0},
            {"date": "2024-01-03T00:00:00Z", "cost": 30.0},
        ]

        observations = observations_from_records(records)

        assert [o.timestamp for o in observations] == [datetime(2024, 1, d) for d in (1, 2, 3)]
        assert all(o.timestamp.tzinfo is None for o in observations)

    def test_naive_utc(self):
        zoned = datetime(2024, 1, 2, 2, 0, tzinfo=timezone(timedelta(hours=2)))

        assert naive_utc(zoned) == datetime(2024, 1, 2)
        assert naive_utc(datetime(2024, 1, 2, 5)) == datetime(2024, 1, 2, 5)

    def test_empty_records(self):
        assert observations_from_records([]) == []

    def test_from_cost_breakdown(self):
        """Month-to-date totals are preferred over the 7-day figures."""
        breakdowns = [
            (BASE_DATE, {
                "totals": {"this_month": 120.0, "last_7_days": 40.0},
                "totals_by_service": {"this_month": {"ec2": 100.0, "s3": 20.0}},
            }),
            (BASE_DATE + timedelta(days=1), {
                "totals": {"last_7_days": 45.0},
                "totals_by_service": {"last_7_days": {"ec2": 45.0}},
            }),
        ]

        observations = from_cost_breakdown(breakdowns, provider="gcp")

        assert observations[0].total_cost == 120.0
        assert observations[0].service_costs == {"ec2": 100.0, "s3": 20.0}
        assert observations[1].total_cost == 45.0
        assert observations[1].metadata.provider == "gcp"
        assert observations[1].metadata.region == "unknown"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
