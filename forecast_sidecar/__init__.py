"""FinOpsMind Forecast Sidecar - cost forecasting, insights and recommendations."""

__version__ = "1.0.0"
