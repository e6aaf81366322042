"""
Tests for the forecast sidecar HTTP API

Run with: pytest tests/test_api.py -v
"""

import inspect
import pytest
from datetime import date, timedelta

from fastapi.testclient import TestClient

from forecast_sidecar import main
from forecast_sidecar.main import app


client = TestClient(app)


def cost_records(days: int, cost=lambda i: 100.0, services=None) -> list:
    start = date(2024, 1, 1)
    records = []
    for i in range(days):
        record = {"date": (start + timedelta(days=i)).isoformat(), "cost": cost(i)}
        if services:
            record["serviceBreakdown"] = services(i)
        records.append(record)
    return records


# ============================================================================
# Health Endpoint Tests
# ============================================================================

class TestHealthEndpoints:
    """Tests for the root and health endpoints."""

    def test_root(self):
        response = client.get("/")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert "/forecast" in body["endpoints"]

    def test_health(self):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["components"]["forecasting"] == "ok"


# ============================================================================
# Forecast Endpoint Tests
# ============================================================================

class TestForecastEndpoint:
    """Tests for POST /forecast."""

    def test_forecast_uses_camel_case(self):
        response = client.post("/forecast", json={
            "historicalData": cost_records(20),
            "config": {"forecastDays": 7},
        })

        assert response.status_code == 200
        body = response.json()
        assert len(body["forecastedCosts"]) == 7
        assert body["forecastedCosts"][0]["predictedCost"] == pytest.approx(100.0)
        assert body["modelUsed"] == "LINEAR"
        assert body["insights"]["trendDirection"] == "stable"
        assert body["dataQuality"]["outlierCount"] == 0
        assert body["dataQuality"]["dataPoints"] == 20
        assert body["recommendations"][-1]["type"] == "ALERT_THRESHOLD"

    def test_business_event_applied(self):
        response = client.post("/forecast", json={
            "historicalData": cost_records(20),
            "config": {"forecastDays": 5, "modelType": "LINEAR", "includeBusinessEvents": True},
            "businessEvents": [
                {"name": "Launch", "date": "2024-01-23T00:00:00", "impact": "HIGH_INCREASE"},
            ],
        })

        assert response.status_code == 200
        predicted = [p["predictedCost"] for p in response.json()["forecastedCosts"]]
        assert predicted[2] == pytest.approx(150.0)
        assert predicted[0] == pytest.approx(100.0)

    def test_zoned_event_date_against_plain_history(self):
        """A UTC event date applies to plain YYYY-MM-DD history."""
        response = client.post("/forecast", json={
            "historicalData": cost_records(20),
            "config": {"forecastDays": 5, "modelType": "LINEAR", "includeBusinessEvents": True},
            "businessEvents": [
                {"name": "Launch", "date": "2024-01-23T00:00:00Z", "impact": "HIGH_INCREASE"},
            ],
        })

        assert response.status_code == 200
        predicted = [p["predictedCost"] for p in response.json()["forecastedCosts"]]
        assert predicted[2] == pytest.approx(150.0)
        assert predicted[1] == pytest.approx(100.0)

    def test_zoned_history_against_plain_event_date(self):
        records = cost_records(20)
        for record in records:
            record["date"] += "T00:00:00Z"

        response = client.post("/forecast", json={
            "historicalData": records,
            "config": {"forecastDays": 5, "modelType": "LINEAR", "includeBusinessEvents": True},
            "businessEvents": [
                {"name": "Launch", "date": "2024-01-23T00:00:00", "impact": "HIGH_INCREASE"},
            ],
        })

        assert response.status_code == 200
        assert response.json()["forecastedCosts"][2]["predictedCost"] == pytest.approx(150.0)

    def test_mixed_iso_history_dates(self):
        """Full timestamps mixed in with plain dates are accepted."""
        records = cost_records(20)
        records[5]["date"] = "2024-01-06T00:00:00"

        response = client.post("/forecast", json={"historicalData": records})

        assert response.status_code == 200
        assert response.json()["dataQuality"]["dataPoints"] == 20

    def test_forecast_runs_in_threadpool(self):
        """CPU-bound endpoints are plain functions so they do not block the event loop."""
        assert not inspect.iscoroutinefunction(main.forecast)
        assert not inspect.iscoroutinefunction(main.forecast_services)

    def test_insufficient_data(self):
        response = client.post("/forecast", json={"historicalData": cost_records(5)})

        assert response.status_code == 400
        assert "14" in response.json()["detail"]
        assert "5" in response.json()["detail"]

    def test_invalid_prediction_interval(self):
        response = client.post("/forecast", json={
            "historicalData": cost_records(20),
            "config": {"predictionIntervalPct": 85},
        })

        assert response.status_code == 400

    def test_negative_cost_rejected(self):
        records = cost_records(20)
        records[3]["cost"] = -1.0

        response = client.post("/forecast", json={"historicalData": records})

        assert response.status_code == 422


# ============================================================================
# Service Forecast Endpoint Tests
# ============================================================================

class TestServiceForecastEndpoint:
    """Tests for POST /forecast/services."""

    def test_service_forecasts(self, monkeypatch):
        monkeypatch.setattr(main, "USE_PROCESSES", False)

        def services(i):
            costs = {"ec2": 60.0, "s3": 40.0}
            if i >= 15:
                costs["lambda"] = 5.0
            return costs

        response = client.post("/forecast/services", json={
            "historicalData": cost_records(20, services=services),
            "config": {"forecastDays": 3},
        })

        assert response.status_code == 200
        body = response.json()
        assert list(body["forecasts"]) == ["ec2", "s3"]
        assert body["skippedServices"] == ["lambda"]
        assert body["forecasts"]["s3"]["forecastedCosts"][0]["predictedCost"] == pytest.approx(40.0)


# ============================================================================
# Data Quality Endpoint Tests
# ============================================================================

class TestDataQualityEndpoint:
    """Tests for POST /data-quality."""

    def test_data_quality_with_gap(self):
        records = [r for i, r in enumerate(cost_records(6)) if i not in (3, 4)]

        response = client.post("/data-quality", json={"historicalData": records})

        assert response.status_code == 200
        body = response.json()
        assert body["completeness"] == pytest.approx(4 / 6)
        assert body["consistency"] == pytest.approx(0.75)
        assert body["timeRange"]["start"].startswith("2024-01-01")

    def test_empty_series(self):
        response = client.post("/data-quality", json={"historicalData": []})

        assert response.status_code == 200
        assert response.json()["dataPoints"] == 0
        assert response.json()["timeRange"] is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
