from __future__ import annotations

import hashlib
import hmac
import logging
import math
import time
from collections import deque
from typing import Any, Callable, Iterable

from fastapi import HTTPException, Request, Security, status
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"

_api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def _digest(key: str) -> bytes:
    return hashlib.sha256(key.encode()).digest()


class APIKeyAuth:
    """
    FastAPI dependency guarding valuation routes with static API keys.

    Only SHA-256 digests of the configured keys are kept. With no keys
    configured every request passes, which is the local-development setup.
    """

    def __init__(self, allowed_keys: Iterable[str] | None = None) -> None:
        keys = {k.strip() for k in allowed_keys or () if k and k.strip()}
        self._digests = tuple(_digest(k) for k in sorted(keys))

    @classmethod
    def from_setting(cls, raw: str) -> "APIKeyAuth":
        """Build from the comma-separated API_KEYS setting."""
        return cls((raw or "").split(","))

    @property
    def enabled(self) -> bool:
        return bool(self._digests)

    def validate(self, api_key: str | None) -> bool:
        if not self.enabled:
            return True
        if not api_key:
            return False
        presented = _digest(api_key)
        matches = [hmac.compare_digest(presented, d) for d in self._digests]
        return any(matches)

    async def __call__(self, api_key: str | None = Security(_api_key_header)) -> str | None:
        if not self.enabled:
            return None
        if self.validate(api_key):
            return api_key
        logger.warning("Rejected request: %s API key", "invalid" if api_key else "missing")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": API_KEY_HEADER},
        )


class RateLimiter:
    """Per-client sliding window of request timestamps over the last minute. 0 rpm disables it."""

    window_seconds = 60.0

    def __init__(self, requests_per_minute: int = 60, clock: Callable[[], float] = time.monotonic) -> None:
        self.rpm = requests_per_minute
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}

    @property
    def enabled(self) -> bool:
        return self.rpm > 0

    def retry_after(self, client: str) -> int:
        hits = self._hits.get(client)
        if not hits:
            return 0
        return max(1, math.ceil(hits[0] + self.window_seconds - self._clock()))

    def check(self, client: str) -> bool:
        if not self.enabled:
            return True
        now = self._clock()
        hits = self._hits.setdefault(client, deque())
        while hits and hits[0] <= now - self.window_seconds:
            hits.popleft()
        if len(hits) >= self.rpm:
            return False
        hits.append(now)
        return True

    async def middleware(self, request: Request, call_next: Any) -> Any:
        client = request.client.host if request.client else "unknown"
        if self.check(client):
            return await call_next(request)
        logger.info("Rate limit exceeded for %s", client)
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": "Rate limit exceeded"},
            headers={"Retry-After": str(self.retry_after(client))},
        )
