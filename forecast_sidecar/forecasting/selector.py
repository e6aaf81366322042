"""Holdout cross-validation for automatic model selection."""

import logging
import math
from typing import Dict, List

from ..domain import CostObservation, ForecastConfig, ForecastedPoint, ModelFitError, ModelType
from .models import build_model

logger = logging.getLogger(__name__)


def forecast_accuracy(predictions: List[ForecastedPoint], actual: List[CostObservation]) -> float:
    """
    1 - MAPE of predictions against the actual costs that follow them.

    Predictions past the end of the actual series count as zero error.
    """
    if not predictions or not actual:
        return 0.0

    errors = []
    for i, prediction in enumerate(predictions):
        if i >= len(actual):
            errors.append(0.0)
            continue
        actual_cost = actual[i].total_cost
        if actual_cost == 0:
            errors.append(0.0 if prediction.predicted_cost == 0 else 1.0)
        else:
            errors.append(abs(prediction.predicted_cost - actual_cost) / actual_cost)

    mape = sum(errors) / len(errors)
    return max(0.0, 1 - mape)


class ModelSelector:
    """
    Scores each candidate model on a chronological 80/20 split and picks
    the most accurate. Ties go to the earlier candidate.
    """

    TRAIN_FRACTION = 0.8
    CANDIDATES = (ModelType.LINEAR, ModelType.EXPONENTIAL, ModelType.SEASONAL)

    def __init__(self, config: ForecastConfig):
        self.config = config
        self.scores: Dict[ModelType, float] = {}
        self.failures: Dict[ModelType, str] = {}

    def candidates(self) -> List[ModelType]:
        if self.config.include_seasonality:
            return list(self.CANDIDATES)
        return [c for c in self.CANDIDATES if c is not ModelType.SEASONAL]

    def score_models(self, series: List[CostObservation]) -> Dict[ModelType, float]:
        train_size = math.floor(len(series) * self.TRAIN_FRACTION)
        train, test = series[:train_size], series[train_size:]

        self.scores = {}
        self.failures = {}
        for model_type in self.candidates():
            try:
                prediction = build_model(model_type, self.config).forecast(train)
                self.scores[model_type] = forecast_accuracy(prediction.points, test)
            except (ModelFitError, ArithmeticError) as e:
                self.failures[model_type] = str(e)
                self.scores[model_type] = 0.0
            logger.debug(f"Model {model_type.value} holdout accuracy: {self.scores[model_type]:.4f}")

        return self.scores

    def select(self, series: List[CostObservation]) -> ModelType:
        """
        Return the best candidate for the series.

        If no candidate could be fitted at all, the ensemble is returned
        since it always produces a forecast.
        """
        scores = self.score_models(series)

        if len(self.failures) == len(scores):
            logger.warning(
                f"All candidate models failed during selection ({', '.join(self.failures.values())}); "
                "using ensemble"
            )
            return ModelType.ENSEMBLE

        best_model = None
        best_score = -1.0
        for model_type, score in scores.items():
            if score > best_score:
                best_model, best_score = model_type, score

        logger.info(f"Selected {best_model.value} model (holdout accuracy {best_score:.3f})")
        return best_model
