from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Mapping


class ConfigurationError(ValueError):
    """Raised when a valuation config cannot be used to value anything."""


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class WeightCoefficients:
    recency: float = 0.3
    mileage: float = 0.4
    distance: float = 0.3

    def total(self) -> float:
        return math.fsum((self.recency, self.mileage, self.distance))


@dataclass(frozen=True)
class WeighterConfig:
    year_tolerance: int = 2
    mileage_tolerance: int = 20_000
    distance_tolerance: int = 100  # miles or km, caller's unit
    recency_half_life_days: int = 90
    weight_coefficients: WeightCoefficients = field(default_factory=WeightCoefficients)
    min_inclusion_weight: float = 0.05
    max_comparables_in_result: int = 10
    target_sample_count: int = 15
    low_percentile: float = 0.10
    high_percentile: float = 0.90
    max_dispersion: float = 1.0

    def __post_init__(self) -> None:
        for name in _INTEGER_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
        for name in _REAL_FIELDS:
            if not _is_finite_number(getattr(self, name)):
                raise ConfigurationError(f"{name} must be a finite number, got {getattr(self, name)!r}")
        coeffs = self.weight_coefficients
        if not isinstance(coeffs, WeightCoefficients):
            raise ConfigurationError("weight_coefficients must be a WeightCoefficients")
        if not all(_is_finite_number(c) for c in (coeffs.recency, coeffs.mileage, coeffs.distance)):
            raise ConfigurationError("weight coefficients must be finite numbers")
        if min(coeffs.recency, coeffs.mileage, coeffs.distance) < 0:
            raise ConfigurationError("weight coefficients must be non-negative")
        if not math.isclose(coeffs.total(), 1.0, rel_tol=0.0, abs_tol=1e-9):
            raise ConfigurationError(f"weight coefficients must sum to 1, got {coeffs.total():.6f}")
        if self.year_tolerance < 0:
            raise ConfigurationError("year_tolerance must be >= 0")
        for name in (
            "mileage_tolerance",
            "distance_tolerance",
            "recency_half_life_days",
            "max_comparables_in_result",
            "target_sample_count",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be > 0")
        if not 0.0 <= self.min_inclusion_weight < 1.0:
            raise ConfigurationError("min_inclusion_weight must be in [0, 1)")
        if not 0.0 <= self.low_percentile <= self.high_percentile <= 1.0:
            raise ConfigurationError("percentiles must satisfy 0 <= low <= high <= 1")
        if self.max_dispersion <= 0:
            raise ConfigurationError("max_dispersion must be > 0")

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any] | None) -> "WeighterConfig":
        return cls().with_options(options)

    def with_options(self, options: Mapping[str, Any] | None) -> "WeighterConfig":
        """
        Override fields using the camelCase option names API callers send.
        Unknown keys are rejected so typos don't silently fall back to defaults.
        """
        if not options:
            return self
        kwargs: dict[str, Any] = {}
        for key, value in options.items():
            if value is None:
                continue
            if key == "weightCoefficients":
                try:
                    kwargs["weight_coefficients"] = WeightCoefficients(**dict(value))
                except (TypeError, ValueError) as exc:
                    raise ConfigurationError(f"invalid weightCoefficients: {exc}") from exc
                continue
            attr = _OPTION_NAMES.get(key)
            if attr is None:
                raise ConfigurationError(f"unknown valuation option: {key}")
            kwargs[attr] = value
        return replace(self, **kwargs)


_INTEGER_FIELDS = (
    "year_tolerance",
    "mileage_tolerance",
    "recency_half_life_days",
    "max_comparables_in_result",
    "target_sample_count",
)

_REAL_FIELDS = (
    "distance_tolerance",
    "min_inclusion_weight",
    "low_percentile",
    "high_percentile",
    "max_dispersion",
)

_OPTION_NAMES = {
    "yearTolerance": "year_tolerance",
    "mileageToleranceUnits": "mileage_tolerance",
    "distanceToleranceUnits": "distance_tolerance",
    "recencyHalfLifeDays": "recency_half_life_days",
    "minInclusionWeight": "min_inclusion_weight",
    "maxComparablesInResult": "max_comparables_in_result",
    "targetSampleCount": "target_sample_count",
    "lowPercentile": "low_percentile",
    "highPercentile": "high_percentile",
    "maxDispersion": "max_dispersion",
}
