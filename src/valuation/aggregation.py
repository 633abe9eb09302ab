from __future__ import annotations

from typing import Sequence, Union

import numpy as np

from valuation.config import WeighterConfig
from valuation.data_models import InsufficientData, PriceEstimate, WeightedComparable


AggregateOutcome = Union[PriceEstimate, InsufficientData]


def weighted_percentile(values: np.ndarray, weights: np.ndarray, q: float) -> float:
    """
    Weighted percentile with linear interpolation between ranked samples.

    Each sample sits at the midpoint of its cumulative-weight interval, so
    equal weights reduce to the usual (i + 0.5) / n plotting positions.
    Quantiles outside the first/last midpoint clamp to the sample range.
    """
    order = np.argsort(values, kind="stable")
    ranked = values[order].astype(float)
    ranked_weights = weights[order].astype(float)
    total = ranked_weights.sum()
    positions = (np.cumsum(ranked_weights) - 0.5 * ranked_weights) / total
    return float(np.interp(q, positions, ranked))


class PriceAggregator:
    def __init__(self, config: WeighterConfig | None = None) -> None:
        self.config = config or WeighterConfig()

    def included(self, weighted: Sequence[WeightedComparable]) -> list[WeightedComparable]:
        threshold = self.config.min_inclusion_weight
        return [wc for wc in weighted if wc.weight > 0 and wc.weight >= threshold]

    def aggregate(self, weighted: Sequence[WeightedComparable]) -> AggregateOutcome:
        if not weighted:
            return InsufficientData(reason="no_eligible_comparables")

        prices = np.array([wc.comparable.price for wc in weighted], dtype=float)
        weights = np.array([wc.weight for wc in weighted], dtype=float)
        total_weight = float(weights.sum())
        if total_weight <= 0:
            return InsufficientData(reason="zero_total_weight", sample_count=len(weighted))

        included = self.included(weighted)
        if not included:
            return InsufficientData(reason="none_above_inclusion_weight", sample_count=len(weighted))

        average = float(np.dot(weights, prices) / total_weight)

        inc_prices = np.array([wc.comparable.price for wc in included], dtype=float)
        inc_weights = np.array([wc.weight for wc in included], dtype=float)
        low = weighted_percentile(inc_prices, inc_weights, self.config.low_percentile)
        high = weighted_percentile(inc_prices, inc_weights, self.config.high_percentile)

        # Below-threshold comparables still pull the average, so it can land
        # outside the percentile band; the band must always contain it.
        low = min(low, average)
        high = max(high, average)
        return PriceEstimate(average=average, low=low, high=high, sample_count=len(included))
