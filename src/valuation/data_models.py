from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal, Optional, Union


ListingSource = Literal["dealer", "marketplace"]
DealerType = Literal["franchise", "independent"]


@dataclass(frozen=True)
class ComparableVehicle:
    id: str
    vin: str
    year: int
    make: str
    model: str
    price: float
    mileage: int
    distance: float
    source: str = "dealer"
    listing_date: Optional[date] = None
    trim: Optional[str] = None
    dealer_type: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "vin": self.vin,
            "year": self.year,
            "make": self.make,
            "model": self.model,
            "trim": self.trim,
            "price": self.price,
            "mileage": self.mileage,
            "distance": self.distance,
            "source": self.source,
            "dealer_type": self.dealer_type,
            "listing_date": self.listing_date.isoformat() if self.listing_date else None,
        }


@dataclass(frozen=True)
class TargetVehicle:
    vin: str
    year: int
    make: str
    model: str
    mileage: int
    trim: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "vin": self.vin,
            "year": self.year,
            "make": self.make,
            "model": self.model,
            "trim": self.trim,
            "mileage": self.mileage,
        }


@dataclass(frozen=True)
class WeightedComparable:
    comparable: ComparableVehicle
    weight: float
    recency_score: float
    mileage_score: float
    distance_score: float

    def to_dict(self) -> dict[str, Any]:
        payload = self.comparable.to_dict()
        payload["weight"] = round(self.weight, 4)
        return payload


@dataclass(frozen=True)
class FilterDiagnostics:
    """Removed-candidate counts, one bucket per rejection reason."""

    total: int = 0
    year: int = 0
    make_model: int = 0
    price: int = 0
    mileage: int = 0
    distance: int = 0

    @property
    def removed(self) -> int:
        return self.year + self.make_model + self.price + self.mileage + self.distance

    @property
    def kept(self) -> int:
        return self.total - self.removed

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "kept": self.kept,
            "removed": self.removed,
            "year": self.year,
            "make_model": self.make_model,
            "price": self.price,
            "mileage": self.mileage,
            "distance": self.distance,
        }

    def summary(self) -> str:
        matched = self.total - self.year - self.make_model
        return f"{matched} of {self.total} candidates matched year/make/model"


@dataclass(frozen=True)
class PriceEstimate:
    average: float
    low: float
    high: float
    sample_count: int


@dataclass(frozen=True)
class InsufficientData:
    reason: str
    sample_count: int = 0


@dataclass(frozen=True)
class ValuationResult:
    average_value: int
    low_value: int
    high_value: int
    confidence: float
    comparables: tuple[WeightedComparable, ...]
    generated_at: datetime
    diagnostics: FilterDiagnostics = field(default_factory=FilterDiagnostics)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "valued",
            "average_value": self.average_value,
            "low_value": self.low_value,
            "high_value": self.high_value,
            "confidence": round(self.confidence, 4),
            "comparables": [wc.to_dict() for wc in self.comparables],
            "generated_at": self.generated_at.isoformat(),
            "diagnostics": self.diagnostics.as_dict(),
        }


@dataclass(frozen=True)
class InsufficientDataOutcome:
    reason: str
    diagnostics: FilterDiagnostics
    generated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "insufficient_data",
            "reason": self.reason,
            "message": self.diagnostics.summary(),
            "diagnostics": self.diagnostics.as_dict(),
            "generated_at": self.generated_at.isoformat(),
        }


ValuationOutcome = Union[ValuationResult, InsufficientDataOutcome]
