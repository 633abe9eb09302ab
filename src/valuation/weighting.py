from __future__ import annotations

import math
from datetime import date
from typing import Optional, Sequence

from valuation.config import WeighterConfig
from valuation.data_models import ComparableVehicle, TargetVehicle, WeightedComparable


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


class ComparableWeighter:
    def __init__(self, config: WeighterConfig | None = None) -> None:
        self.config = config or WeighterConfig()

    def recency_score(self, listing_date: Optional[date], reference_date: date) -> float:
        # Undated listings count as one half-life old.
        if listing_date is None:
            return 0.5
        age_days = max(0, (reference_date - listing_date).days)
        return _clamp01(0.5 ** (age_days / self.config.recency_half_life_days))

    def mileage_score(self, candidate_mileage: int, target_mileage: int) -> float:
        delta = abs(candidate_mileage - target_mileage)
        return 1.0 - min(1.0, delta / self.config.mileage_tolerance)

    def distance_score(self, distance: float) -> float:
        return 1.0 - min(1.0, distance / self.config.distance_tolerance)

    def weigh_one(
        self,
        target: TargetVehicle,
        comparable: ComparableVehicle,
        reference_date: date,
    ) -> WeightedComparable:
        coeffs = self.config.weight_coefficients
        recency = self.recency_score(comparable.listing_date, reference_date)
        mileage = self.mileage_score(comparable.mileage, target.mileage)
        distance = self.distance_score(comparable.distance)
        weight = math.fsum(
            (
                coeffs.recency * recency,
                coeffs.mileage * mileage,
                coeffs.distance * distance,
            )
        )
        return WeightedComparable(
            comparable=comparable,
            weight=_clamp01(weight),
            recency_score=recency,
            mileage_score=mileage,
            distance_score=distance,
        )

    def weigh(
        self,
        target: TargetVehicle,
        comparables: Sequence[ComparableVehicle],
        reference_date: date,
    ) -> list[WeightedComparable]:
        return [self.weigh_one(target, comp, reference_date) for comp in comparables]
