"""
Shared plumbing for payment provider clients.

Providers talk to us mostly by callback; the outbound calls left are short
and rare, so one lazily created httpx client per provider is enough.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.logging_config import get_logger


logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.TransportError)


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        t = {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0, **(timeouts or {})}
        self.timeout = httpx.Timeout(t["total"], connect=t["connect"], read=t["read"], write=t["write"])
        self.max_retries = int((retry or {}).get("max", 2))
        self.backoff = float((retry or {}).get("base", 0.2))
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    async def _retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Retry transport-level failures only; HTTP statuses are the caller's call."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff, min=0.1, max=2.0),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True,
        ):
            with attempt:
                return await fn()
        raise RuntimeError("retry loop exited without an attempt")

    def _log(self, event: str, **kwargs: Any) -> None:
        logger.info(event, provider=self.provider, **kwargs)
