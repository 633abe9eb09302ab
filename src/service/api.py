from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from pydantic import BaseModel, Field, field_validator

from service.auth import APIKeyAuth, RateLimiter
from service.logging_config import configure_logging, correlation_id, new_correlation_id
from service.market_data import MarketCheckClient, RetryConfig
from service.settings import ServiceSettings
from service.storage import RedisCache, ReportStore
from service.vin import VinDecoder, is_valid_vin, sanitize_vin, vin_validation_error
from valuation.assembler import ValuationAssembler
from valuation.config import ConfigurationError
from valuation.data_models import ComparableVehicle, TargetVehicle, ValuationOutcome
from valuation.listing_filters import STRATEGIES, FilterOptions, filter_listings, listing_stats

logger = logging.getLogger(__name__)


# ── Request / Response Models ───────────────────────────────────────

class TargetIn(BaseModel):
    vin: str = Field(min_length=1, max_length=32)
    year: int = Field(ge=1900, le=2100)
    make: str = Field(min_length=1)
    model: str = Field(min_length=1)
    trim: Optional[str] = None
    mileage: int = Field(ge=0)

    def to_target(self) -> TargetVehicle:
        return TargetVehicle(
            vin=self.vin, year=self.year, make=self.make, model=self.model,
            trim=self.trim, mileage=self.mileage,
        )


class ComparableIn(BaseModel):
    # Range checks are the valuation filter's job so bad rows reach its diagnostics.
    id: str
    vin: str = ""
    year: int
    make: str
    model: str
    trim: Optional[str] = None
    price: float
    mileage: int
    distance: float
    source: str = "dealer"
    listing_date: Optional[date] = None
    dealer_type: Optional[str] = None

    def to_comparable(self) -> ComparableVehicle:
        return ComparableVehicle(**self.model_dump())


class ListingFilterIn(BaseModel):
    strategy: str = "top_price"
    limit: int = Field(default=10, ge=1, le=100)
    target_price: Optional[float] = None
    target_mileage: Optional[int] = None
    dealer_type: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_miles: Optional[int] = None
    max_miles: Optional[int] = None

    @field_validator("strategy")
    @classmethod
    def known_strategy(cls, value: str) -> str:
        if value not in STRATEGIES:
            raise ValueError(f"unknown listing strategy {value!r}, expected one of {', '.join(STRATEGIES)}")
        return value

    def to_options(self) -> FilterOptions:
        return FilterOptions(**self.model_dump())


class ValuationRequest(BaseModel):
    target: TargetIn
    comparables: list[ComparableIn] = Field(default_factory=list)
    options: Optional[dict[str, Any]] = None
    reference_date: Optional[date] = None
    listing_filter: Optional[ListingFilterIn] = None


class VinValuationRequest(BaseModel):
    vin: str
    mileage: int = Field(ge=0, le=999_999)
    zip_code: str = Field(pattern=r"^\d{5}$")
    year: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    trim: Optional[str] = None
    options: Optional[dict[str, Any]] = None
    listing_filter: Optional[ListingFilterIn] = None


class HealthResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, bool]


class VinCheckResponse(BaseModel):
    vin: str
    valid: bool
    error: Optional[str] = None
    decoded: Optional[dict[str, Any]] = None


def _listings_block(comparables: list[ComparableVehicle], listing_filter: ListingFilterIn) -> dict[str, Any]:
    shown = filter_listings(comparables, listing_filter.to_options())
    return {
        "strategy": listing_filter.strategy,
        "items": [c.to_dict() for c in shown],
        "stats": listing_stats(comparables),
    }


def _serialize_report(row: dict[str, Any]) -> dict[str, Any]:
    entry = dict(row)
    for k, v in entry.items():
        if hasattr(v, "isoformat"):
            entry[k] = v.isoformat()
    return entry


# ── App Factory ─────────────────────────────────────────────────────

def create_app() -> FastAPI:
    settings = ServiceSettings()
    configure_logging(level=settings.log_level, fmt=settings.log_format)

    # Fails here, before serving anything, on a bad weighting setup.
    base_config = settings.weighter_config()
    assembler = ValuationAssembler(base_config)

    cache = RedisCache(redis_url=settings.redis_url)
    store = ReportStore(dsn=settings.database_dsn)
    vin_decoder = VinDecoder(cache=cache, base_url=settings.nhtsa_base_url, ttl_seconds=settings.vin_cache_ttl_seconds)
    market = MarketCheckClient(
        api_key=settings.marketcheck_api_key,
        base_url=settings.marketcheck_base_url,
        timeout=settings.marketcheck_timeout_seconds,
        retry=RetryConfig(max_attempts=settings.marketcheck_max_attempts),
    )

    auth = APIKeyAuth.from_setting(settings.api_keys)
    limiter = RateLimiter(requests_per_minute=settings.rate_limit_rpm)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await cache.connect()
        await store.connect()
        try:
            yield
        finally:
            await cache.close()
            await store.close()

    app = FastAPI(title="Vehicle Valuation API", version="1.0.0", lifespan=lifespan)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next: Any) -> Response:
        cid = request.headers.get("X-Correlation-ID") or new_correlation_id()
        correlation_id.set(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next: Any) -> Response:
        return await limiter.middleware(request, call_next)

    def assembler_for(options: Optional[dict[str, Any]]) -> ValuationAssembler:
        if not options:
            return assembler
        try:
            return ValuationAssembler(base_config.with_options(options))
        except (ConfigurationError, TypeError) as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    async def persist(target: TargetVehicle, outcome: ValuationOutcome) -> dict[str, Any]:
        report_id = await store.save(target, outcome)
        return {"report_id": report_id, **outcome.to_dict()}

    # ── Valuations ──────────────────────────────────────────────────

    @app.post("/valuations")
    async def create_valuation(payload: ValuationRequest, _: str | None = Depends(auth)) -> dict[str, Any]:
        engine = assembler_for(payload.options)
        target = payload.target.to_target()
        comparables = [c.to_comparable() for c in payload.comparables]
        outcome = engine.value(target, comparables, reference_date=payload.reference_date)
        listings = None
        if payload.listing_filter is not None:
            eligible = list(engine.filter.apply(target, comparables).kept)
            listings = _listings_block(eligible, payload.listing_filter)
        body = await persist(target, outcome)
        if listings is not None:
            body["listings"] = listings
        return body

    @app.post("/valuations/vin")
    async def create_vin_valuation(payload: VinValuationRequest, _: str | None = Depends(auth)) -> dict[str, Any]:
        vin = sanitize_vin(payload.vin)
        error = vin_validation_error(vin)
        if error:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)
        engine = assembler_for(payload.options)

        decoded = await vin_decoder.decode(vin)
        year = payload.year or decoded.get("model_year") or 0
        make = payload.make or decoded.get("make") or ""
        model = payload.model or decoded.get("model") or ""
        if not (year and make and model):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Could not determine year/make/model for this VIN; supply them explicitly",
            )
        target = TargetVehicle(
            vin=vin, year=int(year), make=make, model=model,
            trim=payload.trim or decoded.get("trim") or None, mileage=payload.mileage,
        )

        market_data = await market.fetch_comparables(
            vin, payload.mileage, payload.zip_code,
            make=make, year=int(year), radius=settings.marketcheck_search_radius,
        )
        if not market_data.ok:
            logger.error("Market data unavailable for %s: %s", vin, market_data.error)
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Market data unavailable: {market_data.error}")

        outcome = engine.value(target, market_data.comparables)
        eligible = list(engine.filter.apply(target, market_data.comparables).kept)
        listings = _listings_block(eligible, payload.listing_filter or ListingFilterIn())
        body = await persist(target, outcome)
        body["market_data"] = {
            "source": market_data.source,
            "listings_returned": market_data.raw_count,
            "listings_skipped": market_data.skipped,
            "provider_predicted_price": market_data.predicted_price,
            "listing_stats": listings["stats"],
        }
        body["listings"] = listings
        return body

    @app.get("/valuations/recent")
    async def recent_valuations(limit: int = 20, _: str | None = Depends(auth)) -> dict[str, Any]:
        rows = await store.recent(limit=max(1, min(limit, 100)))
        reports = [_serialize_report(r) for r in rows]
        return {"count": len(reports), "reports": reports}

    @app.get("/valuations/{report_id}")
    async def get_valuation(report_id: str, _: str | None = Depends(auth)) -> dict[str, Any]:
        row = await store.load(report_id)
        if row is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
        return _serialize_report(row)

    # ── VIN ─────────────────────────────────────────────────────────

    @app.get("/vin/{vin}", response_model=VinCheckResponse)
    async def check_vin(vin: str, _: str | None = Depends(auth)) -> VinCheckResponse:
        sanitized = sanitize_vin(vin)
        if not is_valid_vin(sanitized):
            return VinCheckResponse(vin=sanitized, valid=False, error=vin_validation_error(sanitized))
        decoded = await vin_decoder.decode(sanitized)
        return VinCheckResponse(vin=sanitized, valid=True, decoded=decoded)

    # ── Health ──────────────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/ready", response_model=ReadinessResponse)
    async def ready() -> ReadinessResponse:
        checks = {
            "redis": await cache.ping(),
            "database": await store.ping(),
        }
        if not all(checks.values()):
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=ReadinessResponse(status="degraded", checks=checks).model_dump(),
            )
        return ReadinessResponse(status="ready", checks=checks)

    return app


app = create_app()
