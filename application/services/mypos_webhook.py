"""
POS gateway (myPOS) callbacks.

Server-to-server notifications must always be answered with a plain-text
``OK``; the gateway accepts nothing else. Browser redirects must always end
in a redirect, whatever happens while handling them.
"""
from __future__ import annotations

from application.dtos.payments import PaymentNotification
from application.ports.commerce import OrderGateway
from application.services.audit import AuditPhase, AuditTrail
from application.services.event_resolver import EventResolver
from application.services.signature import SIGNATURE_FIELD, SignatureVerifier
from application.utils.calls import bounded
from application.utils.urls import with_query
from core.logging_config import get_logger
from domain.payment.policy import PLAIN_TEXT, Outcome, WebhookReply, render
from shared.codes.payment_codes import IPC_PURCHASE_NOTIFY, IPC_PURCHASE_ROLLBACK


logger = get_logger(__name__)


class MyPosNotifyDispatcher:
    provider = "mypos"

    def __init__(
        self,
        orders: OrderGateway,
        resolver: EventResolver,
        verifier: SignatureVerifier,
        audit: AuditTrail,
        *,
        timeout: float = 10.0,
    ) -> None:
        self.orders = orders
        self.resolver = resolver
        self.verifier = verifier
        self.audit = audit
        self.timeout = timeout

    async def handle(self, notification: PaymentNotification) -> WebhookReply:
        try:
            return await self._handle(notification)
        except Exception as exc:
            logger.error("mypos_notify_failed", error=str(exc), exc_info=True)
            await self.audit.record(AuditPhase.MYPOS_NOTIFY_ERROR, errorMessage=str(exc))
            return render(self.provider, Outcome.INTERNAL_ERROR)

    async def _handle(self, notification: PaymentNotification) -> WebhookReply:
        fields = notification.fields
        logger.info("mypos_notify_received", method=fields.get("IPCmethod"), order_id=fields.get("OrderID"))
        await self.audit.record(
            AuditPhase.MYPOS_NOTIFY_RECEIVED,
            postData=fields,
            headers=dict(notification.headers),
            bodyText=notification.body_text,
        )

        signature = fields.get(SIGNATURE_FIELD)
        if not signature:
            logger.error("mypos_notify_missing_signature")
            await self.audit.record(AuditPhase.MYPOS_NOTIFY_MISSING_SIGNATURE, postData=fields)
            return render(self.provider, Outcome.MISSING_SIGNATURE)

        if not self.verifier.verify(fields, signature, notification.raw_body):
            logger.error("mypos_notify_invalid_signature", order_id=fields.get("OrderID"))
            await self.audit.record(AuditPhase.MYPOS_NOTIFY_INVALID_SIGNATURE, postData=fields)
            return render(self.provider, Outcome.INVALID_SIGNATURE)

        order_id = fields.get("OrderID")
        method = fields.get("IPCmethod")
        logger.info(
            "mypos_notify_verified",
            order_id=order_id,
            amount=fields.get("Amount"),
            currency=fields.get("Currency"),
            method=method,
        )

        if method == IPC_PURCHASE_ROLLBACK:
            # acknowledged only; a rolled back purchase never touches the order
            logger.warning("mypos_notify_rollback", order_id=order_id)
            await self.audit.record(AuditPhase.MYPOS_NOTIFY_ROLLBACK, orderId=order_id, postData=fields)
            return render(self.provider, Outcome.ROLLBACK)

        if method != IPC_PURCHASE_NOTIFY:
            logger.warning("mypos_notify_unhandled_method", method=method)
            await self.audit.record(AuditPhase.MYPOS_NOTIFY_IGNORED, orderId=order_id, method=method)
            return render(self.provider, Outcome.IGNORED)

        event_id = await self.resolver.resolve(order_id, fields.get("Note"))
        if not event_id:
            logger.error("mypos_notify_unresolved", order_id=order_id)
            await self.audit.record(AuditPhase.MYPOS_NOTIFY_UNRESOLVED, orderId=order_id)
            return render(self.provider, Outcome.UNRESOLVED)

        try:
            result = await bounded(
                self.orders.confirm_order(event_id, {"orderNumber": [order_id]}),
                self.timeout,
                operation="confirm_order",
            )
        except Exception as exc:
            logger.error("mypos_notify_confirm_failed", order_id=order_id, event_id=event_id, error=str(exc))
            await self.audit.record(
                AuditPhase.MYPOS_NOTIFY_CONFIRM_ERROR,
                orderId=order_id,
                eventId=event_id,
                errorMessage=str(exc),
            )
            return render(self.provider, Outcome.SUCCESS)

        logger.info("mypos_notify_confirmed", order_id=order_id, event_id=event_id)
        await self.audit.record(
            AuditPhase.MYPOS_NOTIFY_SUCCESS, orderId=order_id, eventId=event_id, confirmResult=result,
        )
        return render(self.provider, Outcome.SUCCESS)


class MyPosRedirectDispatcher:
    """
    Browser-facing URL_OK / URL_Cancel targets.

    A failed signature here is logged and audited but never blocks: the buyer
    reached the page through the gateway's own redirect.
    """

    provider = "mypos"

    def __init__(
        self,
        resolver: EventResolver,
        verifier: SignatureVerifier,
        audit: AuditTrail,
        *,
        thank_you_url: str,
        site_root_url: str,
        status_code: int = 200,
    ) -> None:
        self.resolver = resolver
        self.verifier = verifier
        self.audit = audit
        self.thank_you_url = thank_you_url
        self.site_root_url = site_root_url
        self.status_code = status_code

    def _redirect(self, location: str) -> WebhookReply:
        return WebhookReply(
            status_code=self.status_code,
            media_type=PLAIN_TEXT,
            body="",
            headers={"Location": location},
        )

    def _signature_ok(self, notification: PaymentNotification) -> bool | None:
        """True/False when a signature was sent, None when there was none."""
        signature = notification.get(SIGNATURE_FIELD)
        if not signature:
            return None
        return self.verifier.verify(notification.fields, signature, notification.raw_body)

    async def success(self, notification: PaymentNotification) -> WebhookReply:
        try:
            fields = notification.fields
            await self.audit.record(AuditPhase.MYPOS_OK_RECEIVED, postData=fields, bodyText=notification.body_text)

            valid = self._signature_ok(notification)
            if valid is None:
                logger.warning("mypos_ok_without_signature", order_id=fields.get("OrderID"))
            elif not valid:
                logger.error("mypos_ok_invalid_signature", order_id=fields.get("OrderID"))
                await self.audit.record(AuditPhase.MYPOS_OK_INVALID_SIGNATURE, postData=fields)

            order_id = fields.get("OrderID") or ""
            event_id = await self.resolver.resolve(order_id, fields.get("Note"))
            location = with_query(self.thank_you_url, {"tid": order_id, "oid": order_id, "eid": event_id})
            logger.info("mypos_ok_redirect", location=location)
            return self._redirect(location)
        except Exception as exc:
            logger.error("mypos_ok_failed", error=str(exc), exc_info=True)
            await self.audit.record(AuditPhase.MYPOS_OK_ERROR, errorMessage=str(exc))
            return self._redirect(with_query(self.thank_you_url, {"status": "error"}))

    async def cancel(self, notification: PaymentNotification) -> WebhookReply:
        try:
            fields = notification.fields
            await self.audit.record(AuditPhase.MYPOS_CANCEL_RECEIVED, postData=fields, bodyText=notification.body_text)

            valid = self._signature_ok(notification)
            if valid is not None:
                logger.info("mypos_cancel_signature_checked", valid=valid)

            order_id = fields.get("OrderID") or ""
            location = with_query(self.thank_you_url, {"tid": order_id, "status": "cancelled"})
            logger.info("mypos_cancel_redirect", location=location)
            return self._redirect(location)
        except Exception as exc:
            logger.error("mypos_cancel_failed", error=str(exc), exc_info=True)
            await self.audit.record(AuditPhase.MYPOS_CANCEL_ERROR, errorMessage=str(exc))
            return self._redirect(self.site_root_url)
