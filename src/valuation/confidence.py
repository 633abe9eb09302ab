from __future__ import annotations

from typing import Sequence

from valuation.aggregation import AggregateOutcome
from valuation.config import WeighterConfig
from valuation.data_models import InsufficientData, WeightedComparable


class ConfidenceScorer:
    def __init__(self, config: WeighterConfig | None = None) -> None:
        self.config = config or WeighterConfig()

    def sample_factor(self, sample_count: int) -> float:
        return min(1.0, max(0, sample_count) / self.config.target_sample_count)

    def dispersion(self, low: float, high: float, average: float) -> float:
        if average <= 0:
            return float("inf")
        return max(0.0, (high - low) / average)

    def dispersion_factor(self, dispersion: float) -> float:
        return max(0.0, 1.0 - dispersion / self.config.max_dispersion)

    def score(self, weighted: Sequence[WeightedComparable], estimate: AggregateOutcome) -> float:
        if isinstance(estimate, InsufficientData):
            return 0.0
        threshold = self.config.min_inclusion_weight
        sample_count = sum(1 for wc in weighted if wc.weight > 0 and wc.weight >= threshold)
        spread = self.dispersion(estimate.low, estimate.high, estimate.average)
        confidence = self.sample_factor(sample_count) * self.dispersion_factor(spread)
        return max(0.0, min(1.0, confidence))
