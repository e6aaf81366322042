from .cleaner import DataPreprocessor
from .quality import DataQualityAssessor
from .loader import observations_from_records, from_cost_breakdown, naive_utc
__all__ = [
    "DataPreprocessor", "DataQualityAssessor",
    "observations_from_records", "from_cost_breakdown", "naive_utc",
]
