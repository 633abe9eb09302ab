import pytest

from valuation.listing_filters import FilterOptions, filter_listings, listing_stats


@pytest.fixture
def listings(make_comp):
    return [
        make_comp(id="a", price=21_000, mileage=40_000, distance=30, age_days=40, dealer_type="independent"),
        make_comp(id="b", price=25_000, mileage=20_000, distance=5, age_days=5, dealer_type="franchise"),
        make_comp(id="c", price=23_000, mileage=36_000, distance=60, age_days=None, dealer_type="franchise"),
        make_comp(id="d", price=25_000, mileage=55_000, distance=12, age_days=15, dealer_type="independent"),
    ]


def _ids(rows):
    return [c.id for c in rows]


def test_top_price_is_stable(listings):
    assert _ids(filter_listings(listings, FilterOptions())) == ["b", "d", "c", "a"]


def test_closest_price(listings):
    assert _ids(filter_listings(listings, FilterOptions("closest_price", target_price=22_500))) == ["c", "a", "b", "d"]


def test_closest_mileage_without_target_keeps_input_order(listings):
    assert _ids(filter_listings(listings, FilterOptions("closest_mileage"))) == ["a", "b", "c", "d"]


def test_lowest_mileage_and_distance(listings):
    assert _ids(filter_listings(listings, FilterOptions("lowest_mileage", limit=2))) == ["b", "c"]
    assert _ids(filter_listings(listings, FilterOptions("closest_distance"))) == ["b", "d", "a", "c"]


def test_newest_listings_drop_undated(listings):
    assert _ids(filter_listings(listings, FilterOptions("newest_listings"))) == ["b", "d", "a"]


def test_pre_filters_apply_to_any_strategy(listings):
    opts = FilterOptions("lowest_mileage", dealer_type="independent", max_price=24_000)
    assert _ids(filter_listings(listings, opts)) == ["a"]
    opts = FilterOptions("mileage_range", min_miles=30_000, max_miles=50_000)
    assert _ids(filter_listings(listings, opts)) == ["c", "a"]


def test_unknown_strategy(listings):
    with pytest.raises(ValueError):
        filter_listings(listings, FilterOptions("cheapest"))


def test_empty_input():
    assert filter_listings([], FilterOptions()) == []
    assert listing_stats([])["total"] == 0


def test_stats(listings):
    stats = listing_stats(listings)
    assert stats["total"] == 4
    assert stats["avg_price"] == pytest.approx(23_500)
    assert stats["min_miles"] == 20_000
    assert stats["max_miles"] == 55_000
    assert stats["franchise_count"] == 2
    assert stats["independent_count"] == 2
