from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Optional, Sequence

from valuation.config import WeighterConfig
from valuation.data_models import ComparableVehicle, FilterDiagnostics, TargetVehicle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterOutcome:
    kept: tuple[ComparableVehicle, ...]
    diagnostics: FilterDiagnostics


def _norm(value: str) -> str:
    return " ".join(value.split()).casefold()


class ComparableFilter:
    """
    Hard eligibility rules for comparable listings.

    Each rejected candidate is counted under the first rule it fails, in the
    order year, make/model, price, mileage, distance. Bad data is never raised.
    """

    def __init__(self, config: WeighterConfig | None = None) -> None:
        self.config = config or WeighterConfig()

    def rejection_reason(self, target: TargetVehicle, candidate: ComparableVehicle) -> Optional[str]:
        if abs(candidate.year - target.year) > self.config.year_tolerance:
            return "year"
        if _norm(candidate.make) != _norm(target.make) or _norm(candidate.model) != _norm(target.model):
            return "make_model"
        if candidate.price is None or not math.isfinite(candidate.price) or candidate.price <= 0:
            return "price"
        if candidate.mileage is None or candidate.mileage < 0:
            return "mileage"
        if candidate.distance is None or not math.isfinite(candidate.distance) or candidate.distance < 0:
            return "distance"
        return None

    def apply(self, target: TargetVehicle, candidates: Sequence[ComparableVehicle]) -> FilterOutcome:
        removed: Counter[str] = Counter()
        kept: list[ComparableVehicle] = []
        for candidate in candidates:
            reason = self.rejection_reason(target, candidate)
            if reason is None:
                kept.append(candidate)
            else:
                removed[reason] += 1

        diagnostics = FilterDiagnostics(total=len(candidates), **removed)
        logger.debug(
            "Filtered comparables for %s: kept %d of %d",
            target.vin,
            diagnostics.kept,
            diagnostics.total,
            extra={"extra_data": diagnostics.as_dict()},
        )
        return FilterOutcome(kept=tuple(kept), diagnostics=diagnostics)
