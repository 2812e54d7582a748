"""Helpers for calls made to external collaborators."""
from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from domain.common.exceptions import DownstreamFailure


T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout: float, *, operation: str) -> T:
    """Await a collaborator call with an upper bound on its latency.

    A timeout surfaces as DownstreamFailure; other errors propagate unchanged.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise DownstreamFailure(
            f"{operation} timed out after {timeout}s",
            operation=operation,
            details={"timeout": timeout},
        ) from exc
