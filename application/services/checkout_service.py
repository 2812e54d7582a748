"""
Outbound checkout: turn a commerce-platform order into a POS checkout session.

TransactionBuilder validates the order and produces a CheckoutRequest (or a
CheckoutError the platform shows to the buyer). PaymentProviderPlugin is the
payment-provider contract the platform calls: get_config, connect_account,
create_transaction and refund_transaction.
"""
from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Union

from application.dtos.payments import (
    ISO_4217,
    CheckoutError,
    CheckoutRequest,
    CustomerContact,
    LineItem,
)
from application.ports.commerce import RecordStore
from application.ports.payment_gateway import CheckoutGateway
from application.services.audit import AuditPhase, AuditTrail
from application.utils.calls import bounded
from application.utils.urls import with_query
from core.logging_config import get_logger
from core.settings import CheckoutSettings
from domain.common.exceptions import CheckoutCreationFailure
from domain.payment.identifiers import ensure_https, is_valid_uuid, normalize_amount
from shared.codes.payment_codes import CheckoutCode


logger = get_logger(__name__)

DEFAULT_DESCRIPTION = "Order Payment"
DESCRIPTION_MAX_LENGTH = 20

# Accessor paths per contact field, tried in order against order.description, then order.
CUSTOMER_FIELD_SOURCES: dict[str, tuple[str, ...]] = {
    "email": ("billingAddress.email", "buyerInfo.email", "billingInfo.email", "shippingAddress.email"),
    "first_name": ("billingAddress.firstName", "billingAddress.first_name", "buyerInfo.firstName"),
    "last_name": ("billingAddress.lastName", "billingAddress.last_name", "buyerInfo.lastName"),
    "phone": ("billingAddress.phone", "buyerInfo.phone", "shippingAddress.phone"),
    "country": ("billingAddress.country", "shippingAddress.country"),
    "city": ("billingAddress.city", "shippingAddress.city"),
    "zip_code": ("billingAddress.zipCode", "billingAddress.postalCode", "shippingAddress.zipCode"),
    "address": ("billingAddress.address", "billingAddress.addressLine1", "shippingAddress.address"),
}

_HTML_TAG = re.compile(r"<[^>]+>")
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9\s]")
_STORAGE_HINT = re.compile(r"collection|storage", re.IGNORECASE)


def _lookup(source: Any, path: str) -> Any:
    current = source
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def _first_present(roots: list[Any], paths: tuple[str, ...]) -> Optional[str]:
    for root in roots:
        for path in paths:
            value = _lookup(root, path)
            if value not in (None, ""):
                return str(value)
    return None


def clean_description(text: Optional[str]) -> str:
    """Strip markup and punctuation; the POS gateway rejects both in the note."""
    if not text:
        return DEFAULT_DESCRIPTION
    cleaned = _NON_ALNUM.sub("", _HTML_TAG.sub("", text))[:DESCRIPTION_MAX_LENGTH].strip()
    return cleaned or DEFAULT_DESCRIPTION


def describe_order(order: Mapping[str, Any]) -> str:
    description = order.get("description") or {}
    text = description.get("text") or description.get("title")
    if text:
        return str(text)[:150]
    names = [str(item.get("name")) for item in description.get("items") or [] if isinstance(item, Mapping) and item.get("name")]
    return ", ".join(names).strip() or DEFAULT_DESCRIPTION


def _quantity(raw: Any) -> int:
    # informational only; the charged amount is the order total
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return 1
    return value if value > 0 else 1


class TransactionBuilder:
    def __init__(
        self,
        records: RecordStore,
        settings: CheckoutSettings,
        *,
        notify_url: Optional[str] = None,
        tickets_collection: str = "Events/Tickets",
        timeout: float = 10.0,
    ) -> None:
        self.records = records
        self.settings = settings
        self.notify_url = notify_url
        self.tickets_collection = tickets_collection
        self.timeout = timeout

    def customer(self, order: Mapping[str, Any]) -> CustomerContact:
        roots = [order.get("description") or {}, order]
        placeholders = self.settings.placeholders
        values = {
            name: _first_present(roots, paths) or getattr(placeholders, name)
            for name, paths in CUSTOMER_FIELD_SOURCES.items()
        }
        return CustomerContact(**values)

    def currency(self, order: Mapping[str, Any]) -> str:
        description = order.get("description") or {}
        candidate = str(description.get("currency") or order.get("currency") or "").upper()
        if candidate in ISO_4217:
            return candidate
        if candidate:
            logger.warning("checkout_currency_unsupported", currency=candidate, fallback=self.settings.default_currency)
        return self.settings.default_currency

    async def build(self, order: Mapping[str, Any]) -> Union[CheckoutRequest, CheckoutError]:
        description = order.get("description") or {}
        raw_items = description.get("items")
        items = [
            item for item in (raw_items if isinstance(raw_items, list) else [])
            if isinstance(item, Mapping) and is_valid_uuid(item.get("_id"))
        ]
        if not items:
            return CheckoutError(code=CheckoutCode.NO_VALID_ITEMS.value, message="No valid ticket items found")

        item_ids = [item["_id"] for item in items]
        found = await bounded(
            self.records.query(self.tickets_collection, has_some={"_id": item_ids}),
            self.timeout,
            operation="tickets_query",
        )
        by_id = {ticket.get("_id"): ticket for ticket in found or []}
        tickets = []
        for item_id in item_ids:
            ticket = by_id.get(item_id)
            if ticket is None:
                logger.error("checkout_ticket_missing", item_id=item_id)
                continue
            if not is_valid_uuid(ticket.get("event")):
                logger.error("checkout_ticket_event_invalid", item_id=item_id, event=ticket.get("event"))
                continue
            tickets.append(ticket)
        if not tickets:
            return CheckoutError(code=CheckoutCode.NO_VALID_TICKETS.value, message="No valid tickets found")

        event_ids = {ticket.get("event") for ticket in tickets}
        if len(event_ids) > 1:
            return CheckoutError(
                code=CheckoutCode.MULTIPLE_EVENTS.value,
                message="All tickets must belong to the same event",
            )
        event_id = event_ids.pop()
        matched = {ticket.get("_id") for ticket in tickets}

        raw_total = order.get("totalAmount")
        if raw_total is None:
            raw_total = description.get("totalAmount")
        amount = normalize_amount(raw_total)
        if amount is None:
            logger.error("checkout_amount_invalid", raw_total=raw_total)
            return CheckoutError(code=CheckoutCode.INVALID_AMOUNT.value, message="Order total is not a valid amount")

        order_id = str(order.get("_id") or "")
        success_url = ensure_https(
            with_query(self.settings.success_base_url, {"tid": order_id, "oid": order_id, "eid": event_id})
        )
        cancel_url = ensure_https(with_query(self.settings.cancel_base_url, {"tid": order_id}))

        return CheckoutRequest(
            amount=amount,
            currency=self.currency(order),
            order_id=order_id,
            event_id=event_id,
            description=clean_description(describe_order(order)),
            customer=self.customer(order),
            success_url=success_url,
            cancel_url=cancel_url,
            notify_url=self.notify_url,
            line_items=[
                LineItem(
                    item_id=str(item["_id"]),
                    name=str(item.get("name") or ""),
                    quantity=_quantity(item.get("quantity")),
                    price=normalize_amount(item.get("price")),
                )
                for item in items
                if item["_id"] in matched
            ],
        )


class PaymentProviderPlugin:
    TITLE = "Cartão, Apple Pay e Google Pay"

    def __init__(self, builder: TransactionBuilder, gateway: CheckoutGateway, audit: AuditTrail) -> None:
        self.builder = builder
        self.gateway = gateway
        self.audit = audit

    def get_config(self) -> dict[str, Any]:
        return {
            "title": self.TITLE,
            "paymentMethods": [
                {"hostedPage": {"title": self.TITLE, "billingAddressMandatoryFields": []}},
            ],
            "credentialsFields": [
                {"simpleField": {"name": "myPOS Payments Key", "label": "API Key for myPOS Payments"}},
            ],
        }

    async def connect_account(self, options: Mapping[str, Any]) -> dict[str, Any]:
        return {"credentials": (options or {}).get("credentials")}

    async def create_transaction(self, options: Mapping[str, Any]) -> dict[str, Any]:
        order = (options or {}).get("order") or {}
        built = await self.builder.build(order)
        if isinstance(built, CheckoutError):
            logger.warning("checkout_rejected", code=built.code, order_id=order.get("_id"))
            await self.audit.record(AuditPhase.CHECKOUT_REJECTED, orderId=order.get("_id"), code=built.code)
            return built.as_reply()

        logger.info(
            "checkout_creating",
            provider=self.gateway.provider,
            order_id=built.order_id,
            event_id=built.event_id,
            amount=built.amount,
            currency=built.currency,
        )
        try:
            redirect_url = await self.gateway.create_checkout_session(built)
        except Exception as exc:
            message = str(exc)
            hint = "collection_naming" if _STORAGE_HINT.search(message) else None
            logger.error(
                "checkout_session_failed",
                provider=self.gateway.provider,
                order_id=built.order_id,
                error=message,
                hint=hint,
            )
            await self.audit.record(
                AuditPhase.CHECKOUT_ERROR, orderId=built.order_id, eventId=built.event_id, errorMessage=message,
            )
            raise CheckoutCreationFailure(message, provider=self.gateway.provider, hint=hint) from exc

        await self.audit.record(AuditPhase.CHECKOUT_CREATED, orderId=built.order_id, eventId=built.event_id)
        return {"redirectUrl": redirect_url}

    async def refund_transaction(self, options: Mapping[str, Any]) -> dict[str, Any]:
        logger.info("refund_requested", transaction_id=(options or {}).get("wixTransactionId"))
        return {"code": CheckoutCode.NOT_IMPLEMENTED.value, "message": "Refunds are not supported by this provider"}
