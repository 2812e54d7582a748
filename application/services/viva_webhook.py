"""
Card processor (Viva) "Transaction Payment Created" webhook.

Flow: parse -> authorize -> validate structure -> split merchant reference ->
confirm order -> fetch tickets -> reply. Structural problems are answered
with 400; once the payload is known to be well formed every other outcome is
a 200 so the provider stops retrying (see domain.payment.policy).
"""
from __future__ import annotations

import json
import math
from typing import Any, Mapping, Optional

from application.dtos.payments import TransactionOutcome
from application.ports.commerce import OrderGateway
from application.ports.payment_gateway import WebhookKeyProvider
from application.services.audit import AuditPhase, AuditTrail
from application.services.signature import AuthorizationGuard
from application.utils.calls import bounded
from core.logging_config import get_logger
from domain.common.exceptions import DownstreamFailure, MalformedReferenceError
from domain.payment.identifiers import is_valid_uuid, split_compound
from domain.payment.policy import Outcome, WebhookReply, render


logger = get_logger(__name__)

TICKET_FIELDSET = ["TICKETS", "DETAILS"]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def _event_data(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    data = payload.get("EventData")
    return data if isinstance(data, Mapping) else {}


def _extract(payload: Mapping[str, Any]) -> TransactionOutcome:
    data = _event_data(payload)
    return TransactionOutcome(
        event_type=payload.get("EventTypeId"),
        order_code=data.get("OrderCode"),
        transaction_id=data.get("TransactionId"),
        status_code=data.get("StatusId"),
        amount=data.get("Amount"),
        currency=data.get("CurrencyCode"),
        merchant_reference=data.get("MerchantTrns") if isinstance(data.get("MerchantTrns"), str) else None,
        merchant_id=data.get("MerchantId"),
        customer_email=data.get("Email"),
        full_name=data.get("fullName"),
        card_number=data.get("CardNumber") if isinstance(data.get("CardNumber"), str) else None,
    )


class VivaWebhookDispatcher:
    provider = "viva"

    def __init__(
        self,
        orders: OrderGateway,
        audit: AuditTrail,
        guard: AuthorizationGuard,
        key_provider: Optional[WebhookKeyProvider] = None,
        *,
        success_event_type: int = 1796,
        success_status: str = "F",
        timeout: float = 10.0,
    ) -> None:
        self.orders = orders
        self.audit = audit
        self.guard = guard
        self.key_provider = key_provider
        self.success_event_type = success_event_type
        self.success_status = success_status
        self.timeout = timeout

    async def verification_key(self) -> WebhookReply:
        """Answer the provider's GET used to register the webhook URL."""
        try:
            if self.key_provider is None:
                raise RuntimeError("webhook key provider not configured")
            key = await bounded(self.key_provider.get_webhook_key(), self.timeout, operation="get_webhook_key")
            if not key:
                logger.error("webhook_key_missing", provider=self.provider)
                return render("viva_key", Outcome.KEY_MISSING)
            logger.info("webhook_key_issued", provider=self.provider)
            return render("viva_key", Outcome.KEY_ISSUED, data=key)
        except Exception as exc:
            logger.error("webhook_key_error", provider=self.provider, error=str(exc))
            return render("viva_key", Outcome.KEY_ERROR)

    async def handle(self, headers: Mapping[str, Any], query: Mapping[str, Any], body: bytes) -> WebhookReply:
        payload: Any = None
        try:
            payload = json.loads(body or b"null", parse_constant=_reject_constant)
            if not isinstance(payload, Mapping):
                payload = {}

            if not self.guard.permit(headers, query):
                await self.audit.record(AuditPhase.WEBHOOK_UNAUTHORIZED, query=dict(query or {}))
                return render(self.provider, Outcome.UNAUTHORIZED)

            logger.info("webhook_received", provider=self.provider, event_type=payload.get("EventTypeId"))
            await self.audit.record(AuditPhase.WEBHOOK_DATA, webhookData=payload)

            outcome = _extract(payload)
            rejection = await self._validate(outcome, payload)
            if rejection is not None:
                return rejection

            try:
                reference = split_compound(outcome.merchant_reference)
            except MalformedReferenceError:
                logger.error("merchant_trns_invalid", merchant_trns=outcome.merchant_reference)
                await self.audit.record(
                    AuditPhase.WEBHOOK_PROCESSING_ERROR,
                    errorMessage="Invalid merchantTrns format, expected orderId:eventId",
                    merchantTrns=outcome.merchant_reference,
                )
                return render(self.provider, Outcome.MALFORMED_REFERENCE)

            if not is_valid_uuid(reference.event_id):
                logger.error("event_id_invalid", event_id=reference.event_id)
                await self.audit.record(
                    AuditPhase.WEBHOOK_PROCESSING_ERROR,
                    errorMessage="eventId is not a valid UUID",
                    eventId=reference.event_id,
                )
                return render(self.provider, Outcome.INVALID_EVENT_ID)

            outcome.order_id = reference.order_id
            outcome.event_id = reference.event_id
            logger.info(
                "transaction_processing",
                order_code=outcome.order_code,
                transaction_id=outcome.transaction_id,
                amount=outcome.amount,
                currency=outcome.currency,
                order_id=outcome.order_id,
                event_id=outcome.event_id,
                card=outcome.masked_card,
            )

            await self._confirm(outcome)
            await self._fetch_tickets(outcome)
            return render(self.provider, Outcome.SUCCESS, data=outcome.reply_data())
        except Exception as exc:
            logger.error("webhook_processing_failed", provider=self.provider, error=str(exc), exc_info=True)
            await self.audit.record(AuditPhase.WEBHOOK_PROCESSING_ERROR, errorMessage=str(exc), webhookData=payload)
            return render(self.provider, Outcome.INTERNAL_ERROR)

    async def _validate(self, outcome: TransactionOutcome, payload: Mapping[str, Any]) -> Optional[WebhookReply]:
        outcome_kind: Optional[Outcome] = None
        message: Optional[str] = None

        if not (_is_number(outcome.event_type) and outcome.event_type == self.success_event_type):
            outcome_kind = Outcome.INVALID_EVENT_TYPE
        elif (
            not outcome.order_code
            or not outcome.transaction_id
            or not outcome.status_code
            or outcome.amount is None
            or not _event_data(payload).get("MerchantTrns")
        ):
            outcome_kind = Outcome.MISSING_FIELDS
        elif outcome.status_code != self.success_status:
            outcome_kind = Outcome.NOT_SUCCESSFUL
            message = f"Transaction status is {outcome.status_code}, expected '{self.success_status}' for success"
        elif not _is_number(outcome.amount) or not math.isfinite(outcome.amount) or outcome.amount <= 0:
            outcome_kind = Outcome.INVALID_AMOUNT

        if outcome_kind is None:
            return None
        logger.error(
            "webhook_validation_failed",
            reason=outcome_kind.value,
            event_type=outcome.event_type,
            order_code=outcome.order_code,
            transaction_id=outcome.transaction_id,
            status=outcome.status_code,
            amount=outcome.amount,
        )
        await self.audit.record(AuditPhase.WEBHOOK_VALIDATION_ERROR, reason=outcome_kind.value, webhookData=dict(payload))
        return render(self.provider, outcome_kind, message=message)

    async def _confirm(self, outcome: TransactionOutcome) -> None:
        options = {"orderNumber": [outcome.order_id]}
        try:
            result = await bounded(
                self.orders.confirm_order(outcome.event_id, options), self.timeout, operation="confirm_order",
            )
            logger.info("order_confirmed", order_id=outcome.order_id, event_id=outcome.event_id)
            await self.audit.record(
                AuditPhase.WEBHOOK_ORDER_CONFIRM,
                orderId=outcome.order_id,
                eventId=outcome.event_id,
                transactionId=outcome.transaction_id,
                orderCode=outcome.order_code,
                amount=outcome.amount,
                confirmResult=result,
            )
        except Exception as exc:
            logger.error("order_confirm_failed", order_id=outcome.order_id, event_id=outcome.event_id, error=str(exc))
            await self.audit.record(
                AuditPhase.WEBHOOK_ORDER_CONFIRM_ERROR,
                orderId=outcome.order_id,
                eventId=outcome.event_id,
                transactionId=outcome.transaction_id,
                orderCode=outcome.order_code,
                errorMessage=str(exc),
                details=getattr(exc, "details", None) or {},
            )

    async def _fetch_tickets(self, outcome: TransactionOutcome) -> None:
        identifiers = {"eventId": outcome.event_id, "orderNumber": outcome.order_id}
        try:
            tickets = await bounded(
                self.orders.get_order(identifiers, {"fieldset": TICKET_FIELDSET}),
                self.timeout,
                operation="get_order",
            )
            if not tickets:
                raise DownstreamFailure("No tickets found in order.", operation="get_order")
            download_url = (tickets[0] or {}).get("pdfUrl")
            if not download_url:
                raise DownstreamFailure("No valid ticket URL found (pdfUrl).", operation="get_order")
            # kept for a ticket e-mail; dispatch happens outside this service
            outcome.download_url = download_url
            await self.audit.record(AuditPhase.GET_ORDER_COMPLETE, getOrderResponse=tickets)
        except Exception as exc:
            logger.error("get_order_failed", order_id=outcome.order_id, event_id=outcome.event_id, error=str(exc))
            await self.audit.record(
                AuditPhase.GET_ORDER_ERROR,
                orderId=outcome.order_id,
                eventId=outcome.event_id,
                errorMessage=str(exc),
                details=getattr(exc, "details", None) or {},
            )
