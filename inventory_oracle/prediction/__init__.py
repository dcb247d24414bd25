from inventory_oracle.prediction.algorithms import LinearTrendAlgorithm, PredictionAlgorithm
from inventory_oracle.prediction.engine import PredictionEngine

__all__ = ["LinearTrendAlgorithm", "PredictionAlgorithm", "PredictionEngine"]
