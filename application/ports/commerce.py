"""
Commerce platform ports.

The hosted events platform owns orders, tickets, records, secrets and the
audit collection; handlers reach it only through these protocols.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class OrderGateway(Protocol):
    async def confirm_order(self, event_id: str, options: dict[str, Any]) -> Any: ...

    async def get_order(self, identifiers: dict[str, Any], options: dict[str, Any]) -> list[dict[str, Any]]: ...


@runtime_checkable
class RecordStore(Protocol):
    """Collection queries; `get` raises when the record does not exist."""

    async def query(
        self,
        collection: str,
        *,
        eq: Optional[dict[str, Any]] = None,
        contains: Optional[dict[str, str]] = None,
        has_some: Optional[dict[str, list[Any]]] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]: ...

    async def get(self, collection: str, record_id: str) -> dict[str, Any]: ...


@runtime_checkable
class SecretStore(Protocol):
    async def get_secret(self, name: str) -> str: ...


@runtime_checkable
class AuditSink(Protocol):
    async def insert(self, collection: str, document: dict[str, Any]) -> Any: ...
