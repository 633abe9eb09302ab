from valuation.config import WeighterConfig
from valuation.filtering import ComparableFilter


def test_output_is_ordered_subset(accord, make_comp):
    candidates = [
        make_comp(price=20_000),
        make_comp(price=0),
        make_comp(price=21_000, year=2016),
        make_comp(price=22_000),
        make_comp(price=23_000, model="Civic"),
        make_comp(price=24_000),
    ]
    outcome = ComparableFilter().apply(accord, candidates)
    assert [c.price for c in outcome.kept] == [20_000, 22_000, 24_000]
    assert all(c in candidates for c in outcome.kept)
    assert all(c.price > 0 for c in outcome.kept)


def test_year_off_by_five_excluded_regardless_of_price(accord, make_comp):
    bargain = make_comp(price=1_000, year=2016)
    outcome = ComparableFilter().apply(accord, [bargain])
    assert outcome.kept == ()
    assert outcome.diagnostics.year == 1


def test_year_within_tolerance_kept(accord, make_comp):
    outcome = ComparableFilter().apply(accord, [make_comp(year=2019), make_comp(year=2023), make_comp(year=2024)])
    assert [c.year for c in outcome.kept] == [2019, 2023]


def test_make_model_match_ignores_case_and_spacing(accord, make_comp):
    outcome = ComparableFilter().apply(accord, [make_comp(make="HONDA ", model="accord")])
    assert len(outcome.kept) == 1


def test_diagnostics_count_each_reason_once(accord, make_comp):
    candidates = [
        make_comp(year=2010, price=-5),  # counted as year only
        make_comp(make="Toyota"),
        make_comp(price=-1),
        make_comp(mileage=-10),
        make_comp(distance=-3),
        make_comp(),
    ]
    diag = ComparableFilter().apply(accord, candidates).diagnostics
    assert diag.as_dict() == {
        "total": 6,
        "kept": 1,
        "removed": 5,
        "year": 1,
        "make_model": 1,
        "price": 1,
        "mileage": 1,
        "distance": 1,
    }


def test_empty_input_is_valid(accord):
    outcome = ComparableFilter().apply(accord, [])
    assert outcome.kept == ()
    assert outcome.diagnostics.total == 0
    assert outcome.diagnostics.removed == 0


def test_custom_year_tolerance(accord, make_comp):
    strict = ComparableFilter(WeighterConfig(year_tolerance=0))
    outcome = strict.apply(accord, [make_comp(year=2021), make_comp(year=2022)])
    assert [c.year for c in outcome.kept] == [2021]


def test_non_finite_price_and_distance_rejected(accord, make_comp):
    candidates = [
        make_comp(price=float("nan")),
        make_comp(price=float("inf")),
        make_comp(distance=float("nan")),
        make_comp(distance=float("inf")),
        make_comp(),
    ]
    outcome = ComparableFilter().apply(accord, candidates)
    assert outcome.kept == (candidates[-1],)
    assert outcome.diagnostics.price == 2
    assert outcome.diagnostics.distance == 2
