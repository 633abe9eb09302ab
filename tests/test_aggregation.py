import numpy as np
import pytest

from valuation.aggregation import PriceAggregator, weighted_percentile
from valuation.data_models import InsufficientData, PriceEstimate, WeightedComparable


def _wc(make_comp, price: float, weight: float) -> WeightedComparable:
    return WeightedComparable(
        comparable=make_comp(price=price),
        weight=weight,
        recency_score=weight,
        mileage_score=weight,
        distance_score=weight,
    )


def test_empty_is_insufficient_not_zero():
    outcome = PriceAggregator().aggregate([])
    assert isinstance(outcome, InsufficientData)
    assert outcome.reason == "no_eligible_comparables"


def test_all_below_threshold_is_insufficient(make_comp):
    outcome = PriceAggregator().aggregate([_wc(make_comp, 20_000, 0.01), _wc(make_comp, 21_000, 0.02)])
    assert isinstance(outcome, InsufficientData)
    assert outcome.reason == "none_above_inclusion_weight"
    assert outcome.sample_count == 2


def test_zero_total_weight_is_insufficient(make_comp):
    outcome = PriceAggregator().aggregate([_wc(make_comp, 20_000, 0.0)])
    assert isinstance(outcome, InsufficientData)


def test_weighted_average(make_comp):
    outcome = PriceAggregator().aggregate([_wc(make_comp, 10_000, 1.0), _wc(make_comp, 20_000, 0.25)])
    assert isinstance(outcome, PriceEstimate)
    assert outcome.average == pytest.approx((10_000 + 0.25 * 20_000) / 1.25)
    assert outcome.sample_count == 2


def test_single_comparable_collapses_range(make_comp):
    outcome = PriceAggregator().aggregate([_wc(make_comp, 18_250.4, 0.7)])
    assert outcome.low == outcome.average == outcome.high == pytest.approx(18_250.4)


def test_below_threshold_moves_average_but_not_bounds(make_comp):
    weighted = [
        _wc(make_comp, 20_000, 0.9),
        _wc(make_comp, 20_000, 0.9),
        _wc(make_comp, 100_000, 0.04),
    ]
    outcome = PriceAggregator().aggregate(weighted)
    assert outcome.average > 20_000
    assert outcome.sample_count == 2
    # band widened to contain the average
    assert outcome.low == 20_000
    assert outcome.high == pytest.approx(outcome.average)


@pytest.mark.parametrize("seed", range(5))
def test_low_average_high_ordering(make_comp, seed):
    rng = np.random.default_rng(seed)
    weighted = [
        _wc(make_comp, float(rng.uniform(5_000, 60_000)), float(rng.uniform(0.0, 1.0)))
        for _ in range(int(rng.integers(1, 30)))
    ]
    outcome = PriceAggregator().aggregate(weighted)
    if isinstance(outcome, PriceEstimate):
        assert outcome.low <= outcome.average <= outcome.high


def test_weighted_percentile_equal_weights_interpolates():
    values = np.array([10.0, 20.0, 30.0, 40.0])
    weights = np.ones(4)
    # midpoints at 0.125, 0.375, 0.625, 0.875
    assert weighted_percentile(values, weights, 0.5) == pytest.approx(25.0)
    assert weighted_percentile(values, weights, 0.25) == pytest.approx(15.0)
    assert weighted_percentile(values, weights, 0.05) == 10.0
    assert weighted_percentile(values, weights, 0.95) == 40.0


def test_weighted_percentile_respects_weights():
    values = np.array([30.0, 10.0])
    heavy_low = weighted_percentile(values, np.array([1.0, 9.0]), 0.5)
    heavy_high = weighted_percentile(values, np.array([9.0, 1.0]), 0.5)
    assert heavy_low < heavy_high
