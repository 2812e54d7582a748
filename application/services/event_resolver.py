"""
Event identifier resolution for POS callbacks.

The POS gateway echoes back our order id and a free-text note. The note is
supposed to carry the event id; when it does not, the event is looked up
through an ordered list of strategies, first hit wins. Every strategy is
isolated: one failing lookup is audited and the next one is tried.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from application.ports.commerce import RecordStore
from application.services.audit import AuditPhase, AuditTrail
from application.utils.calls import bounded
from core.logging_config import get_logger
from domain.payment.identifiers import is_valid_uuid


logger = get_logger(__name__)


@dataclass(frozen=True)
class LookupStrategy:
    name: str
    error_phase: AuditPhase
    lookup: Callable[[str], Awaitable[Optional[str]]]


class EventResolver:
    def __init__(
        self,
        records: RecordStore,
        audit: AuditTrail,
        *,
        orders_collection: str = "Events/Orders",
        tickets_collection: str = "Events/Tickets",
        timeout: float = 10.0,
    ) -> None:
        self.records = records
        self.audit = audit
        self.orders_collection = orders_collection
        self.tickets_collection = tickets_collection
        self.timeout = timeout
        self.strategies: list[LookupStrategy] = [
            LookupStrategy("orders_query", AuditPhase.RESOLVER_ORDERS_QUERY_ERROR, self._from_orders_query),
            LookupStrategy("orders_get", AuditPhase.RESOLVER_ORDERS_GET_ERROR, self._from_order_record),
            LookupStrategy("tickets_query", AuditPhase.RESOLVER_TICKETS_QUERY_ERROR, self._from_tickets_query),
        ]

    async def resolve(self, order_id: Optional[str], note: Optional[str] = None) -> str:
        """Return the event id for an order, or "" when nothing resolves it."""
        if note and is_valid_uuid(note):
            logger.info("event_id_from_note", order_id=order_id, event_id=note)
            return note

        logger.warning("event_id_note_unusable", order_id=order_id, note=note)
        if not order_id:
            await self.audit.record(AuditPhase.RESOLVER_UNRESOLVED, order_id=order_id, reason="missing order id")
            return ""

        for strategy in self.strategies:
            try:
                event_id = await strategy.lookup(order_id)
            except Exception as exc:
                logger.warning("event_lookup_failed", strategy=strategy.name, order_id=order_id, error=str(exc))
                await self.audit.record(strategy.error_phase, order_id=order_id, errorMessage=str(exc))
                continue
            if event_id:
                logger.info("event_id_resolved", strategy=strategy.name, order_id=order_id, event_id=event_id)
                await self.audit.record(
                    AuditPhase.RESOLVER_RESOLVED, order_id=order_id, event_id=event_id, strategy=strategy.name,
                )
                return str(event_id)

        logger.error("event_id_unresolved", order_id=order_id)
        await self.audit.record(AuditPhase.RESOLVER_UNRESOLVED, order_id=order_id)
        return ""

    async def _call(self, awaitable: Awaitable[Any], operation: str) -> Any:
        return await bounded(awaitable, self.timeout, operation=operation)

    async def _from_orders_query(self, order_id: str) -> Optional[str]:
        items = await self._call(
            self.records.query(self.orders_collection, contains={"orderNumber": order_id}, limit=1),
            "orders_query",
        )
        return (items[0] or {}).get("eventId") if items else None

    async def _from_order_record(self, order_id: str) -> Optional[str]:
        record = await self._call(self.records.get(self.orders_collection, order_id), "orders_get")
        return (record or {}).get("eventId")

    async def _from_tickets_query(self, order_id: str) -> Optional[str]:
        items = await self._call(
            self.records.query(self.tickets_collection, eq={"orderNumber": order_id}),
            "tickets_query",
        )
        return (items[0] or {}).get("event") if items else None
