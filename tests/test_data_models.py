from datetime import date, datetime, timezone

from valuation.data_models import (
    ComparableVehicle,
    FilterDiagnostics,
    InsufficientDataOutcome,
    ValuationResult,
    WeightedComparable,
)


def test_comparable_shape():
    comp = ComparableVehicle(
        id="c1",
        vin="1HGCV1F30MA111111",
        year=2021,
        make="Honda",
        model="Accord",
        price=24_900.0,
        mileage=33_000,
        distance=12.0,
        listing_date=date(2025, 5, 20),
    )
    payload = comp.to_dict()
    assert payload["listing_date"] == "2025-05-20"
    assert payload["source"] == "dealer"
    assert payload["dealer_type"] is None


def test_diagnostics_totals():
    diag = FilterDiagnostics(total=10, year=2, make_model=3, price=1)
    assert diag.removed == 6
    assert diag.kept == 4
    assert diag.summary() == "5 of 10 candidates matched year/make/model"


def test_result_serialization(make_comp):
    wc = WeightedComparable(make_comp(), weight=0.123456, recency_score=0.5, mileage_score=0.1, distance_score=0.0)
    result = ValuationResult(
        average_value=24_554,
        low_value=23_000,
        high_value=26_000,
        confidence=0.17612,
        comparables=(wc,),
        generated_at=datetime(2025, 6, 1, 12, tzinfo=timezone.utc),
    )
    payload = result.to_dict()
    assert payload["status"] == "valued"
    assert payload["confidence"] == 0.1761
    assert payload["comparables"][0]["weight"] == 0.1235
    assert payload["generated_at"] == "2025-06-01T12:00:00+00:00"
    assert payload["diagnostics"]["total"] == 0


def test_insufficient_serialization():
    outcome = InsufficientDataOutcome(
        reason="none_above_inclusion_weight",
        diagnostics=FilterDiagnostics(total=4, year=4),
        generated_at=datetime(2025, 6, 1, tzinfo=timezone.utc),
    )
    payload = outcome.to_dict()
    assert payload["status"] == "insufficient_data"
    assert payload["message"] == "0 of 4 candidates matched year/make/model"
    assert payload["diagnostics"]["kept"] == 0
