from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional, Union


_FRANCHISE_MAKES = frozenset(
    {
        "BMW", "MERCEDES-BENZ", "MERCEDES", "AUDI", "PORSCHE", "VOLKSWAGEN", "VW",
        "CADILLAC", "LINCOLN", "TESLA",
        "LEXUS", "ACURA", "INFINITI",
        "HONDA", "TOYOTA", "FORD", "CHEVROLET", "CHEVY", "GMC", "NISSAN", "HYUNDAI",
        "KIA", "MAZDA", "SUBARU", "JEEP", "RAM", "DODGE", "CHRYSLER",
        "VOLVO", "MINI", "LAND ROVER", "RANGE ROVER", "JAGUAR",
        "BUICK", "GENESIS", "MITSUBISHI",
    }
)

# Discontinued brands, mostly found on independent lots.
_INDEPENDENT_MAKES = frozenset(
    {
        "SATURN", "PONTIAC", "OLDSMOBILE", "PLYMOUTH", "MERCURY", "SAAB",
        "HUMMER", "SCION", "ISUZU", "SUZUKI", "DAEWOO", "GEO",
    }
)


@dataclass(frozen=True)
class DealerTypeResult:
    dealer_type: Literal["franchise", "independent"]
    confidence: Literal["high", "medium", "low"]
    reasoning: str


def classify_dealer_type(
    make: str,
    year: Union[int, str],
    current_year: Optional[int] = None,
) -> DealerTypeResult:
    """Pick the dealer channel whose pricing best matches this make and model year."""
    normalized = make.strip().upper()
    age = (current_year or date.today().year) - int(year)

    if normalized in _FRANCHISE_MAKES:
        suffix = ", though older models may also be found at independent dealers" if age > 10 else ""
        return DealerTypeResult(
            dealer_type="franchise",
            confidence="high" if age <= 10 else "medium",
            reasoning=f"{make} is a major brand typically sold at franchise dealers{suffix}",
        )
    if normalized in _INDEPENDENT_MAKES:
        return DealerTypeResult(
            dealer_type="independent",
            confidence="high",
            reasoning=f"{make} is a discontinued brand typically sold at independent dealers",
        )
    if age > 15:
        return DealerTypeResult(
            dealer_type="independent",
            confidence="medium",
            reasoning=f"Vehicle is {age} years old, typically sold at independent dealers",
        )
    if age <= 10:
        return DealerTypeResult(
            dealer_type="franchise",
            confidence="low",
            reasoning="Default classification for recent vehicle from recognized brand",
        )
    return DealerTypeResult(
        dealer_type="independent",
        confidence="low",
        reasoning="Default classification for older vehicle from less common brand",
    )


def dealer_type_label(dealer_type: str) -> str:
    return "Franchise Dealer" if dealer_type == "franchise" else "Independent Dealer"


def dealer_type_short_label(dealer_type: str) -> str:
    return "Franchise" if dealer_type == "franchise" else "Independent"
