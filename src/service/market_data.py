from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Optional

import httpx

from valuation.data_models import ComparableVehicle
from valuation.dealer_type import classify_dealer_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 8.0
    backoff_multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        delay = self.initial_delay_seconds * self.backoff_multiplier ** (attempt - 1)
        return min(delay, self.max_delay_seconds)


@dataclass
class MarketDataResult:
    vin: str
    comparables: list[ComparableVehicle] = field(default_factory=list)
    raw_count: int = 0
    skipped: int = 0
    predicted_price: float | None = None
    source: str = "none"
    error: str | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _first(*values: Any) -> Any:
    for v in values:
        if v not in (None, ""):
            return v
    return None


def parse_listing(listing: dict[str, Any]) -> Optional[ComparableVehicle]:
    """
    Map one MarketCheck listing to a ComparableVehicle.

    Returns None when the listing lacks the identity or numeric fields a
    comparable needs. Range checks (price > 0 etc.) are left to the
    valuation filter so they show up in its diagnostics.
    """
    build = listing.get("build") or {}
    address = listing.get("dealer_address") or listing.get("location") or {}
    year = _first(listing.get("year"), build.get("year"))
    make = _first(listing.get("make"), build.get("make"))
    model = _first(listing.get("model"), build.get("model"))
    price = _first(listing.get("price"), listing.get("asking_price"))
    mileage = _first(listing.get("miles"), listing.get("mileage"))
    distance = _first(listing.get("dist"), listing.get("distance"), address.get("distance_miles"))
    if year is None or make is None or model is None or price is None or mileage is None or distance is None:
        return None
    try:
        return ComparableVehicle(
            id=str(listing.get("id") or listing.get("vin") or ""),
            vin=str(listing.get("vin") or ""),
            year=int(year),
            make=str(make),
            model=str(model),
            trim=_first(listing.get("trim"), build.get("trim")),
            price=float(price),
            mileage=int(float(mileage)),
            distance=float(distance),
            source="marketplace" if listing.get("seller_type") == "private" else "dealer",
            listing_date=_parse_date(_first(listing.get("first_seen_at"), listing.get("created_at"))),
            dealer_type=listing.get("dealer_type"),
        )
    except (TypeError, ValueError):
        return None


_ZIP_PATTERN = re.compile(r"^\d{5}$")


class MarketCheckClient:
    """Async client for MarketCheck price prediction with recent comparables.

    Retries network errors, 429 and 5xx with exponential backoff.
    Other 4xx responses are returned immediately as errors.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://mc-api.marketcheck.com/v2",
        timeout: float = 10.0,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry = retry or RetryConfig()
        self._transport = transport
        self._sleep = sleep
        self._enabled = bool(api_key)

    async def fetch_comparables(
        self,
        vin: str,
        miles: int,
        zip_code: str,
        *,
        make: str = "",
        year: int | None = None,
        radius: int = 100,
    ) -> MarketDataResult:
        if not self._enabled:
            return MarketDataResult(vin=vin, error="marketcheck_not_configured")
        if len(vin) != 17:
            return MarketDataResult(vin=vin, error="invalid_vin", status_code=400)
        if not 0 <= miles <= 999_999:
            return MarketDataResult(vin=vin, error="invalid_mileage", status_code=400)
        if not _ZIP_PATTERN.match(zip_code or ""):
            return MarketDataResult(vin=vin, error="invalid_zip", status_code=400)

        dealer_type = classify_dealer_type(make, year).dealer_type if make and year else "franchise"
        params = {
            "api_key": self.api_key,
            "vin": vin,
            "miles": miles,
            "zip": zip_code,
            "dealer_type": dealer_type,
            "radius": radius,
        }
        url = f"{self.base_url}/predict/car/us/marketcheck_price/comparables"

        last_error = "marketcheck_request_failed"
        status_code: int | None = None
        for attempt in range(1, self.retry.max_attempts + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                    resp = await client.get(url, params=params, headers={"Accept": "application/json"})
                if resp.status_code >= 400:
                    status_code = resp.status_code
                    last_error = f"marketcheck_http_{resp.status_code}"
                    retryable = resp.status_code == 429 or resp.status_code >= 500
                    logger.warning(
                        "MarketCheck attempt %d/%d for %s returned %d",
                        attempt, self.retry.max_attempts, vin, resp.status_code,
                    )
                    if not retryable:
                        break
                else:
                    return self._to_result(vin, resp.json())
            except (httpx.HTTPError, ValueError) as exc:
                last_error = str(exc) or exc.__class__.__name__
                logger.warning("MarketCheck attempt %d/%d for %s failed: %s", attempt, self.retry.max_attempts, vin, exc)

            if attempt < self.retry.max_attempts:
                await self._sleep(self.retry.delay_for(attempt))

        return MarketDataResult(vin=vin, error=last_error, status_code=status_code)

    def _to_result(self, vin: str, data: dict[str, Any]) -> MarketDataResult:
        recent = data.get("recent_comparables") or {}
        listings = recent.get("listings") or []
        comparables: list[ComparableVehicle] = []
        skipped = 0
        for listing in listings:
            parsed = parse_listing(listing)
            if parsed is None:
                skipped += 1
            else:
                comparables.append(parsed)
        if skipped:
            logger.info("Skipped %d malformed MarketCheck listings for %s", skipped, vin)
        predicted = _first(data.get("marketcheck_price"), data.get("price"), data.get("predicted_price"))
        return MarketDataResult(
            vin=vin,
            comparables=comparables,
            raw_count=len(listings),
            skipped=skipped,
            predicted_price=float(predicted) if predicted is not None else None,
            source="marketcheck",
        )
