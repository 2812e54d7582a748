"""
REST adapter for the hosted events/commerce platform.

One client implements every commerce port (OrderGateway, RecordStore,
SecretStore, AuditSink) over the platform's HTTP API:

    POST /events/{eventId}/orders/confirm     {"options": {...}}
    POST /events/orders/get                   {"identifiers": {...}, "options": {...}}
    POST /data/{collection}/query             {"filter": {...}, "limit": n}
    GET  /data/{collection}/{id}
    POST /data/{collection}                   {document}
    GET  /secrets/{name}

Collection names carry a slash ("Events/Orders") and are path-escaped.
"""
from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

from core.logging_config import get_logger
from domain.common.exceptions import DownstreamFailure
from infrastructure.external.api_clients.base import APIError, BaseAPIClient, NotFoundError


logger = get_logger(__name__)


def _segment(value: str) -> str:
    return quote(str(value), safe="")


class CommercePlatformClient(BaseAPIClient):
    def __init__(self, base_url: str, api_key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(base_url, auth_token=api_key, **kwargs)

    async def _call(self, operation: str, method: str, endpoint: str, **kwargs: Any) -> Any:
        try:
            response = await self._request(method, endpoint, **kwargs)
        except NotFoundError:
            raise
        except APIError as exc:
            logger.error("commerce_call_failed", operation=operation, status_code=exc.status_code, error=exc.message)
            raise DownstreamFailure(
                exc.message, operation=operation, details={"status_code": exc.status_code},
            ) from exc
        return response.data

    # OrderGateway
    async def confirm_order(self, event_id: str, options: dict[str, Any]) -> Any:
        return await self._call(
            "confirm_order", "POST", f"/events/{_segment(event_id)}/orders/confirm", json_data={"options": options},
        )

    async def get_order(self, identifiers: dict[str, Any], options: dict[str, Any]) -> list[dict[str, Any]]:
        data = await self._call(
            "get_order", "POST", "/events/orders/get", json_data={"identifiers": identifiers, "options": options},
        )
        if isinstance(data, dict):
            data = data.get("tickets") or []
        return list(data or [])

    # RecordStore
    async def query(
        self,
        collection: str,
        *,
        eq: Optional[dict[str, Any]] = None,
        contains: Optional[dict[str, str]] = None,
        has_some: Optional[dict[str, list[Any]]] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        criteria = {"eq": eq, "contains": contains, "hasSome": has_some}
        payload: dict[str, Any] = {"filter": {k: v for k, v in criteria.items() if v}}
        if limit is not None:
            payload["limit"] = limit
        data = await self._call("query", "POST", f"/data/{_segment(collection)}/query", json_data=payload)
        return list((data or {}).get("items") or [])

    async def get(self, collection: str, record_id: str) -> dict[str, Any]:
        try:
            data = await self._call("get", "GET", f"/data/{_segment(collection)}/{_segment(record_id)}")
        except NotFoundError as exc:
            raise DownstreamFailure(
                f"{collection} record {record_id} not found", operation="get", details={"status_code": 404},
            ) from exc
        if not data:
            raise DownstreamFailure(f"{collection} record {record_id} not found", operation="get")
        return data

    # SecretStore
    async def get_secret(self, name: str) -> str:
        data = await self._call("get_secret", "GET", f"/secrets/{_segment(name)}")
        return (data or {}).get("value") or ""

    # AuditSink
    async def insert(self, collection: str, document: dict[str, Any]) -> Any:
        return await self._call("insert", "POST", f"/data/{_segment(collection)}", json_data=document)
