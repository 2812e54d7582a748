"""
Append-only audit trail written to the commerce platform's log collection.

Every decision branch of a handler records one entry `{phase, data, ts}`
before the handler answers the provider.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from application.ports.commerce import AuditSink
from application.utils.calls import bounded
from core.logging_config import get_logger


logger = get_logger(__name__)


class AuditPhase(str, Enum):
    # card processor webhook
    WEBHOOK_DATA = "webhook_data"
    WEBHOOK_UNAUTHORIZED = "webhook_unauthorized"
    WEBHOOK_VALIDATION_ERROR = "webhook_validation_error"
    WEBHOOK_PROCESSING_ERROR = "webhook_processing_error"
    WEBHOOK_ORDER_CONFIRM = "webhook_order_confirm"
    WEBHOOK_ORDER_CONFIRM_ERROR = "webhook_order_confirm_error"
    GET_ORDER_COMPLETE = "get_order_complete"
    GET_ORDER_ERROR = "get_order_error"

    # POS server-to-server notification
    MYPOS_NOTIFY_RECEIVED = "mypos_notify_received"
    MYPOS_NOTIFY_MISSING_SIGNATURE = "mypos_notify_missing_signature"
    MYPOS_NOTIFY_INVALID_SIGNATURE = "mypos_notify_invalid_signature"
    MYPOS_NOTIFY_ROLLBACK = "mypos_notify_rollback"
    MYPOS_NOTIFY_IGNORED = "mypos_notify_ignored"
    MYPOS_NOTIFY_SUCCESS = "mypos_notify_success"
    MYPOS_NOTIFY_CONFIRM_ERROR = "mypos_notify_confirm_error"
    MYPOS_NOTIFY_UNRESOLVED = "mypos_notify_unresolved"
    MYPOS_NOTIFY_ERROR = "mypos_notify_error"

    # POS browser redirects
    MYPOS_OK_RECEIVED = "mypos_ok_received"
    MYPOS_OK_INVALID_SIGNATURE = "mypos_ok_invalid_signature"
    MYPOS_OK_ERROR = "mypos_ok_error"
    MYPOS_CANCEL_RECEIVED = "mypos_cancel_received"
    MYPOS_CANCEL_ERROR = "mypos_cancel_error"

    # event resolver
    RESOLVER_RESOLVED = "resolver_resolved"
    RESOLVER_ORDERS_QUERY_ERROR = "resolver_orders_query_error"
    RESOLVER_ORDERS_GET_ERROR = "resolver_orders_get_error"
    RESOLVER_TICKETS_QUERY_ERROR = "resolver_tickets_query_error"
    RESOLVER_UNRESOLVED = "resolver_unresolved"

    # outbound checkout
    CHECKOUT_CREATED = "checkout_created"
    CHECKOUT_REJECTED = "checkout_rejected"
    CHECKOUT_ERROR = "checkout_error"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class AuditTrail:
    def __init__(self, sink: AuditSink, *, collection: str = "logs", timeout: float = 10.0) -> None:
        self.sink = sink
        self.collection = collection
        self.timeout = timeout

    async def record(self, phase: AuditPhase, **data: Any) -> None:
        """Write one entry; a failing sink is logged and never reaches the caller."""
        document = {"phase": phase.value, "data": data, "ts": _utc_now_iso()}
        try:
            await bounded(
                self.sink.insert(self.collection, document),
                self.timeout,
                operation="audit_insert",
            )
        except Exception as exc:
            logger.error("audit_write_failed", phase=phase.value, error=str(exc))
