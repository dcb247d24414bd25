from inventory_oracle.recommendations.engine import ComponentAlternativeEngine
from inventory_oracle.recommendations.strategies import ScoringStrategy, build_default_strategies

__all__ = ["ComponentAlternativeEngine", "ScoringStrategy", "build_default_strategies"]
