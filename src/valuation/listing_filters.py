from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import pandas as pd

from valuation.data_models import ComparableVehicle

logger = logging.getLogger(__name__)


STRATEGIES = (
    "top_price",
    "closest_price",
    "closest_mileage",
    "lowest_mileage",
    "closest_distance",
    "newest_listings",
    "dealer_type",
    "price_range",
    "mileage_range",
)


@dataclass(frozen=True)
class FilterOptions:
    strategy: str = "top_price"
    limit: int = 10
    target_price: Optional[float] = None
    target_mileage: Optional[int] = None
    dealer_type: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_miles: Optional[int] = None
    max_miles: Optional[int] = None


def listings_frame(listings: Sequence[ComparableVehicle]) -> pd.DataFrame:
    frame = pd.DataFrame([c.to_dict() for c in listings])
    if frame.empty:
        return frame
    frame["listing_date"] = pd.to_datetime(frame["listing_date"])
    return frame


def filter_listings(listings: Sequence[ComparableVehicle], options: FilterOptions) -> list[ComparableVehicle]:
    """
    Sort and trim comparable listings for display.

    Pre-filters (dealer type, price range, mileage range) apply whenever their
    options are set, regardless of strategy. Strategies needing a target value
    that wasn't supplied fall back to input order.
    """
    if options.strategy not in STRATEGIES:
        raise ValueError(f"Unknown filter strategy: {options.strategy}")
    if not listings:
        return []

    frame = listings_frame(listings)
    if options.dealer_type:
        frame = frame[frame["dealer_type"] == options.dealer_type]
    if options.min_price is not None:
        frame = frame[frame["price"] >= options.min_price]
    if options.max_price is not None:
        frame = frame[frame["price"] <= options.max_price]
    if options.min_miles is not None:
        frame = frame[frame["mileage"] >= options.min_miles]
    if options.max_miles is not None:
        frame = frame[frame["mileage"] <= options.max_miles]

    strategy = options.strategy
    if strategy in ("top_price", "dealer_type", "price_range"):
        frame = frame.sort_values("price", ascending=False, kind="mergesort")
    elif strategy == "closest_price":
        if options.target_price is None:
            logger.warning("closest_price strategy requires target_price")
        else:
            frame = frame.assign(_gap=(frame["price"] - options.target_price).abs())
            frame = frame.sort_values("_gap", kind="mergesort")
    elif strategy == "closest_mileage":
        if options.target_mileage is None:
            logger.warning("closest_mileage strategy requires target_mileage")
        else:
            frame = frame.assign(_gap=(frame["mileage"] - options.target_mileage).abs())
            frame = frame.sort_values("_gap", kind="mergesort")
    elif strategy in ("lowest_mileage", "mileage_range"):
        frame = frame.sort_values("mileage", kind="mergesort")
    elif strategy == "closest_distance":
        frame = frame.sort_values("distance", kind="mergesort")
    elif strategy == "newest_listings":
        frame = frame[frame["listing_date"].notna()]
        frame = frame.sort_values("listing_date", ascending=False, kind="mergesort")

    return [listings[i] for i in frame.index[: options.limit]]


def listing_stats(listings: Sequence[ComparableVehicle]) -> dict[str, Any]:
    if not listings:
        return {
            "total": 0,
            "avg_price": 0.0,
            "min_price": 0.0,
            "max_price": 0.0,
            "avg_miles": 0.0,
            "min_miles": 0,
            "max_miles": 0,
            "franchise_count": 0,
            "independent_count": 0,
        }
    frame = listings_frame(listings)
    prices = frame.loc[frame["price"] > 0, "price"]
    miles = frame.loc[frame["mileage"] > 0, "mileage"]
    dealer_counts = frame["dealer_type"].value_counts()
    return {
        "total": int(len(frame)),
        "avg_price": float(prices.mean()) if not prices.empty else 0.0,
        "min_price": float(prices.min()) if not prices.empty else 0.0,
        "max_price": float(prices.max()) if not prices.empty else 0.0,
        "avg_miles": float(miles.mean()) if not miles.empty else 0.0,
        "min_miles": int(miles.min()) if not miles.empty else 0,
        "max_miles": int(miles.max()) if not miles.empty else 0,
        "franchise_count": int(dealer_counts.get("franchise", 0)),
        "independent_count": int(dealer_counts.get("independent", 0)),
    }
