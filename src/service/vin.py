from __future__ import annotations

import logging
import re
from typing import Any, Optional

import httpx

from service.storage import RedisCache

logger = logging.getLogger(__name__)


_VIN_PATTERN = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")

_TRANSLITERATION = {
    **{str(d): d for d in range(10)},
    "A": 1, "B": 2, "C": 3, "D": 4, "E": 5, "F": 6, "G": 7, "H": 8,
    "J": 1, "K": 2, "L": 3, "M": 4, "N": 5, "P": 7, "R": 9,
    "S": 2, "T": 3, "U": 4, "V": 5, "W": 6, "X": 7, "Y": 8, "Z": 9,
}

_POSITION_WEIGHTS = (8, 7, 6, 5, 4, 3, 2, 10, 0, 9, 8, 7, 6, 5, 4, 3, 2)

# Position 10 model-year code, current 30-year cycle.
_YEAR_CODE_MAP = {
    "Y": 2000, "1": 2001, "2": 2002, "3": 2003, "4": 2004, "5": 2005,
    "6": 2006, "7": 2007, "8": 2008, "9": 2009, "A": 2010, "B": 2011,
    "C": 2012, "D": 2013, "E": 2014, "F": 2015, "G": 2016, "H": 2017,
    "J": 2018, "K": 2019, "L": 2020, "M": 2021, "N": 2022, "P": 2023,
    "R": 2024, "S": 2025, "T": 2026, "V": 2027, "W": 2028, "X": 2029,
}


def sanitize_vin(vin: str) -> str:
    return re.sub(r"\s+", "", vin or "").upper()


def is_valid_vin_format(vin: str) -> bool:
    return bool(vin) and _VIN_PATTERN.match(vin.upper()) is not None


def calculate_check_digit(vin: str) -> Optional[str]:
    total = 0
    for char, weight in zip(vin.upper(), _POSITION_WEIGHTS):
        value = _TRANSLITERATION.get(char)
        if value is None:
            return None
        total += value * weight
    remainder = total % 11
    return "X" if remainder == 10 else str(remainder)


def is_valid_vin_checksum(vin: str) -> bool:
    if not is_valid_vin_format(vin):
        return False
    return calculate_check_digit(vin) == vin[8].upper()


def is_valid_vin(vin: str) -> bool:
    return is_valid_vin_format(vin) and is_valid_vin_checksum(vin)


def vin_validation_error(vin: str) -> Optional[str]:
    sanitized = sanitize_vin(vin)
    if not sanitized:
        return "VIN is required"
    if len(sanitized) != 17:
        return "VIN must be exactly 17 characters"
    if not is_valid_vin_format(sanitized):
        return "VIN contains invalid characters (I, O, Q not allowed)"
    if not is_valid_vin_checksum(sanitized):
        return "Invalid VIN checksum - please verify the VIN"
    return None


def model_year_from_vin(vin: str) -> int:
    return _YEAR_CODE_MAP.get(vin[9].upper(), 0) if len(vin) >= 10 else 0


class VinDecoder:
    def __init__(self, cache: RedisCache, base_url: str, ttl_seconds: int) -> None:
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.ttl_seconds = ttl_seconds

    def _fallback_decode(self, vin: str) -> dict[str, Any]:
        return {
            "vin": vin,
            "model_year": model_year_from_vin(vin),
            "make": "",
            "model": "",
            "trim": "",
            "decode_source": "fallback",
        }

    async def decode(self, vin: str) -> dict[str, Any]:
        cache_key = f"vin_decode:{vin}"
        cached = await self.cache.get_json(cache_key)
        if cached is not None:
            return cached

        try:
            url = f"{self.base_url}/DecodeVinValues/{vin}"
            async with httpx.AsyncClient(timeout=2.0) as client:
                resp = await client.get(url, params={"format": "json"})
                resp.raise_for_status()
            payload = resp.json()
            row = (payload.get("Results") or [{}])[0]
            decoded = {
                "vin": vin,
                "model_year": int(row.get("ModelYear") or 0) or model_year_from_vin(vin),
                "make": row.get("Make") or "",
                "model": row.get("Model") or "",
                "trim": row.get("Trim") or "",
                "decode_source": "nhtsa",
            }
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("NHTSA decode failed for %s: %s", vin, exc)
            decoded = self._fallback_decode(vin)

        # Only cache real decodes so a transient outage doesn't pin a blank make/model.
        if decoded["decode_source"] == "nhtsa":
            await self.cache.set_json(cache_key, decoded, ttl_seconds=self.ttl_seconds)
        return decoded
