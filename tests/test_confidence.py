import pytest

from valuation.confidence import ConfidenceScorer
from valuation.data_models import InsufficientData, PriceEstimate, WeightedComparable


def _weighted(make_comp, n: int, weight: float = 0.8) -> list[WeightedComparable]:
    return [
        WeightedComparable(make_comp(), weight=weight, recency_score=1.0, mileage_score=1.0, distance_score=1.0)
        for _ in range(n)
    ]


def _estimate(low: float, high: float, average: float = 20_000.0) -> PriceEstimate:
    return PriceEstimate(average=average, low=low, high=high, sample_count=0)


def test_insufficient_data_scores_exactly_zero(make_comp):
    assert ConfidenceScorer().score(_weighted(make_comp, 20), InsufficientData("no_eligible_comparables")) == 0.0


def test_saturates_at_target_count(make_comp):
    scorer = ConfidenceScorer()
    estimate = _estimate(20_000, 20_000)
    assert scorer.score(_weighted(make_comp, 15), estimate) == 1.0
    assert scorer.score(_weighted(make_comp, 40), estimate) == 1.0


def test_scales_linearly_below_target(make_comp):
    assert ConfidenceScorer().score(_weighted(make_comp, 3), _estimate(20_000, 20_000)) == pytest.approx(0.2)


def test_non_decreasing_in_sample_count(make_comp):
    scorer = ConfidenceScorer()
    estimate = _estimate(18_000, 22_000)
    scores = [scorer.score(_weighted(make_comp, n), estimate) for n in range(1, 25)]
    assert scores == sorted(scores)


def test_non_increasing_in_dispersion(make_comp):
    scorer = ConfidenceScorer()
    weighted = _weighted(make_comp, 8)
    scores = [scorer.score(weighted, _estimate(20_000 - spread, 20_000 + spread)) for spread in range(0, 15_000, 1_000)]
    assert scores == sorted(scores, reverse=True)


def test_always_in_unit_interval(make_comp):
    scorer = ConfidenceScorer()
    assert scorer.score(_weighted(make_comp, 5), _estimate(0, 90_000)) == 0.0
    assert scorer.score(_weighted(make_comp, 5), _estimate(100, 200, average=0)) == 0.0
    assert 0.0 <= scorer.score(_weighted(make_comp, 5), _estimate(19_000, 21_000)) <= 1.0


def test_below_threshold_comparables_do_not_count(make_comp):
    scorer = ConfidenceScorer()
    estimate = _estimate(20_000, 20_000)
    weighted = _weighted(make_comp, 3) + _weighted(make_comp, 10, weight=0.01)
    assert scorer.score(weighted, estimate) == pytest.approx(0.2)
