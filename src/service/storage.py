from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import redis.asyncio as redis
from redis.exceptions import RedisError
from sqlalchemy import JSON, Column, DateTime, Float, Integer, MetaData, String, Table, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from valuation.data_models import TargetVehicle, ValuationOutcome, ValuationResult

logger = logging.getLogger(__name__)


metadata = MetaData()

valuation_reports_table = Table(
    "valuation_reports",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("vin", String(32), nullable=False, index=True),
    Column("status", String(32), nullable=False),
    Column("target_json", JSON, nullable=False),
    Column("result_json", JSON, nullable=False),
    Column("average_value", Integer, nullable=True),
    Column("low_value", Integer, nullable=True),
    Column("high_value", Integer, nullable=True),
    Column("confidence", Float, nullable=False, default=0.0),
    Column("created_at", DateTime(timezone=True), nullable=False),
)


class RedisCache:
    """JSON values under `<namespace>:<key>`, with a process-local TTL map when Redis is down."""

    def __init__(self, redis_url: str, namespace: str = "valuation", timeout: float = 0.75) -> None:
        self.redis_url = redis_url
        self.namespace = namespace
        self.timeout = timeout
        self._client: Any = None
        self._local: dict[str, tuple[float, str]] = {}

    @property
    def connected(self) -> bool:
        return self._client is not None

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def connect(self) -> None:
        client = redis.from_url(self.redis_url, decode_responses=True)
        try:
            await asyncio.wait_for(client.ping(), timeout=self.timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("Redis unavailable at %s, caching in memory: %s", self.redis_url, exc)
            await client.aclose()
            return
        self._client = client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await asyncio.wait_for(self._client.ping(), timeout=self.timeout))
        except (RedisError, OSError, asyncio.TimeoutError):
            return False

    def _recall(self, full_key: str) -> str | None:
        entry = self._local.get(full_key)
        if entry is None:
            return None
        expires_at, raw = entry
        if asyncio.get_running_loop().time() > expires_at:
            del self._local[full_key]
            return None
        return raw

    def _remember(self, full_key: str, raw: str, ttl_seconds: int) -> None:
        self._local[full_key] = (asyncio.get_running_loop().time() + ttl_seconds, raw)

    async def get_json(self, key: str) -> dict[str, Any] | None:
        full_key = self._key(key)
        if self._client is None:
            raw = self._recall(full_key)
        else:
            try:
                raw = await self._client.get(full_key)
            except RedisError as exc:
                logger.warning("Redis get failed for %s: %s", full_key, exc)
                return None
        return None if raw is None else json.loads(raw)

    async def set_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        full_key = self._key(key)
        raw = json.dumps(value, default=str)
        if self._client is not None:
            try:
                await self._client.set(full_key, raw, ex=ttl_seconds)
                return
            except RedisError as exc:
                logger.warning("Redis set failed for %s, keeping it in memory: %s", full_key, exc)
        self._remember(full_key, raw, ttl_seconds)


class ReportStore:
    """
    Persists valuation outcomes keyed by report id.

    Falls back to process memory when the database can't be reached, so the
    API stays usable in development and tests.
    """

    def __init__(self, dsn: str) -> None:
        self.dsn = dsn
        self.engine: AsyncEngine | None = None
        self._fallback_mode = False
        self._reports: dict[str, dict[str, Any]] = {}

    async def connect(self) -> None:
        try:
            self.engine = create_async_engine(self.dsn, future=True)
            await self.init_schema()
        except Exception as exc:
            logger.warning("Database unavailable, keeping reports in memory: %s", exc)
            if self.engine is not None:
                await self.engine.dispose()
            self._fallback_mode = True
            self.engine = None

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()

    async def ping(self) -> bool:
        if self.engine is None or self._fallback_mode:
            return False
        try:
            async with self.engine.connect() as conn:
                await conn.execute(select(1))
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Database ping failed: %s", exc)
            return False
        return True

    async def init_schema(self) -> None:
        if self.engine is None:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    @staticmethod
    def _report_row(target: TargetVehicle, outcome: ValuationOutcome) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": str(uuid4()),
            "vin": target.vin,
            "status": "insufficient_data",
            "target_json": target.to_dict(),
            "result_json": outcome.to_dict(),
            "average_value": None,
            "low_value": None,
            "high_value": None,
            "confidence": 0.0,
            "created_at": datetime.now(timezone.utc),
        }
        if isinstance(outcome, ValuationResult):
            row.update(
                status="valued",
                average_value=outcome.average_value,
                low_value=outcome.low_value,
                high_value=outcome.high_value,
                confidence=outcome.confidence,
            )
        return row

    async def save(self, target: TargetVehicle, outcome: ValuationOutcome) -> str:
        row = self._report_row(target, outcome)
        if self.engine is None:
            self._reports[row["id"]] = row
        else:
            async with self.engine.begin() as conn:
                await conn.execute(insert(valuation_reports_table).values(**row))
        logger.info("Saved %s report %s for %s", row["status"], row["id"], target.vin)
        return row["id"]

    async def load(self, report_id: str) -> dict[str, Any] | None:
        if self.engine is None:
            return self._reports.get(report_id)
        stmt = select(valuation_reports_table).where(valuation_reports_table.c.id == report_id)
        async with self.engine.connect() as conn:
            row = (await conn.execute(stmt)).first()
        return dict(row._mapping) if row else None

    async def recent(self, limit: int = 20) -> list[dict[str, Any]]:
        if self.engine is None:
            # dicts keep insertion order, newest last
            return list(self._reports.values())[::-1][:limit]
        stmt = (
            select(valuation_reports_table)
            .order_by(valuation_reports_table.c.created_at.desc())
            .limit(limit)
        )
        async with self.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [dict(r._mapping) for r in rows]
