from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable, Optional, Sequence

from valuation.aggregation import PriceAggregator
from valuation.confidence import ConfidenceScorer
from valuation.config import WeighterConfig
from valuation.data_models import (
    ComparableVehicle,
    InsufficientData,
    InsufficientDataOutcome,
    TargetVehicle,
    ValuationOutcome,
    ValuationResult,
    WeightedComparable,
)
from valuation.filtering import ComparableFilter
from valuation.weighting import ComparableWeighter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _display_key(wc: WeightedComparable) -> tuple[float, int, float]:
    listed = wc.comparable.listing_date
    listed_ordinal = listed.toordinal() if listed is not None else 0
    return (-wc.weight, -listed_ordinal, wc.comparable.distance)


class ValuationAssembler:
    """
    Runs filter -> weigh -> aggregate -> score for one valuation request.

    Holds only configuration, so a single instance can be shared across
    concurrent requests. Running out of comparables is an expected business
    outcome and comes back as an InsufficientDataOutcome, never an exception.
    """

    def __init__(
        self,
        config: WeighterConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or WeighterConfig()
        self.clock = clock or _utcnow
        self.filter = ComparableFilter(self.config)
        self.weighter = ComparableWeighter(self.config)
        self.aggregator = PriceAggregator(self.config)
        self.scorer = ConfidenceScorer(self.config)

    def select_comparables(self, weighted: Sequence[WeightedComparable]) -> tuple[WeightedComparable, ...]:
        eligible = self.aggregator.included(weighted)
        ranked = sorted(eligible, key=_display_key)
        return tuple(ranked[: self.config.max_comparables_in_result])

    def value(
        self,
        target: TargetVehicle,
        candidates: Sequence[ComparableVehicle],
        reference_date: Optional[date] = None,
    ) -> ValuationOutcome:
        generated_at = self.clock()
        as_of = reference_date or generated_at.date()

        filtered = self.filter.apply(target, candidates)
        weighted = self.weighter.weigh(target, filtered.kept, as_of)
        estimate = self.aggregator.aggregate(weighted)
        confidence = self.scorer.score(weighted, estimate)

        if isinstance(estimate, InsufficientData):
            logger.info(
                "Insufficient data to value %s (%s)",
                target.vin,
                estimate.reason,
                extra={"extra_data": filtered.diagnostics.as_dict()},
            )
            return InsufficientDataOutcome(
                reason=estimate.reason,
                diagnostics=filtered.diagnostics,
                generated_at=generated_at,
            )

        result = ValuationResult(
            average_value=round(estimate.average),
            low_value=round(estimate.low),
            high_value=round(estimate.high),
            confidence=confidence,
            comparables=self.select_comparables(weighted),
            generated_at=generated_at,
            diagnostics=filtered.diagnostics,
        )
        logger.info(
            "Valued %s at %d (%d-%d) from %d comparables, confidence %.3f",
            target.vin,
            result.average_value,
            result.low_value,
            result.high_value,
            estimate.sample_count,
            confidence,
        )
        return result


def value_vehicle(
    target: TargetVehicle,
    candidates: Sequence[ComparableVehicle],
    config: WeighterConfig | None = None,
    reference_date: Optional[date] = None,
) -> ValuationOutcome:
    return ValuationAssembler(config).value(target, candidates, reference_date=reference_date)
