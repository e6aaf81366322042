from .insights import InsightsGenerator
from .recommendations import RecommendationEngine
__all__ = ["InsightsGenerator", "RecommendationEngine"]
