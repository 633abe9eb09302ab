from datetime import date, timedelta

import pytest

from valuation.data_models import ComparableVehicle, TargetVehicle

REFERENCE_DATE = date(2025, 6, 1)


@pytest.fixture
def reference_date() -> date:
    return REFERENCE_DATE


@pytest.fixture
def accord() -> TargetVehicle:
    return TargetVehicle(vin="1HGCV1F34MA000001", year=2021, make="Honda", model="Accord", mileage=35_000)


@pytest.fixture
def make_comp():
    counter = {"n": 0}

    def _make(
        price: float = 24_500,
        mileage: int = 35_000,
        distance: float = 15,
        age_days: int | None = 30,
        year: int = 2021,
        make: str = "Honda",
        model: str = "Accord",
        **kwargs,
    ) -> ComparableVehicle:
        counter["n"] += 1
        listing_date = None if age_days is None else REFERENCE_DATE - timedelta(days=age_days)
        return ComparableVehicle(
            id=kwargs.pop("id", f"comp-{counter['n']}"),
            vin=kwargs.pop("vin", f"VIN{counter['n']:014d}"),
            year=year,
            make=make,
            model=model,
            price=price,
            mileage=mileage,
            distance=distance,
            listing_date=listing_date,
            **kwargs,
        )

    return _make
