"""
Provider callback routes.

Thin on purpose: read the raw request, hand it to a dispatcher, write back
exactly what the dispatcher decided. Dispatchers never raise.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from api.dependencies import (
    get_mypos_notify_dispatcher,
    get_mypos_redirect_dispatcher,
    get_viva_dispatcher,
)
from application.dtos.payments import PaymentNotification
from application.services.mypos_webhook import MyPosNotifyDispatcher, MyPosRedirectDispatcher
from application.services.viva_webhook import VivaWebhookDispatcher
from core.logging_config import get_logger
from domain.payment.policy import JSON, WebhookReply


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def to_response(reply: WebhookReply) -> Response:
    if reply.media_type == JSON:
        return JSONResponse(status_code=reply.status_code, content=reply.body, headers=reply.headers or None)
    return Response(
        content=reply.body or "",
        status_code=reply.status_code,
        media_type=reply.media_type,
        headers=reply.headers or None,
    )


async def read_redirect_params(request: Request, provider: str) -> PaymentNotification:
    """GET reads the query string; POST reads the form body, falling back to the query string."""
    headers = dict(request.headers)
    query = dict(request.query_params)
    if request.method == "POST":
        raw_body = await request.body()
        if raw_body:
            return PaymentNotification.from_form(provider, headers, raw_body, query)
    # parsed from the raw query string so field order survives for signature checks
    return PaymentNotification.from_form(provider, headers, request.url.query.encode("utf-8"), query)


@router.get("/transaction-payment-created", summary="Card processor webhook verification key")
async def viva_verification_key(dispatcher: VivaWebhookDispatcher = Depends(get_viva_dispatcher)):
    return to_response(await dispatcher.verification_key())


@router.post("/transaction-payment-created", summary="Card processor transaction payment created")
async def viva_transaction_created(request: Request, dispatcher: VivaWebhookDispatcher = Depends(get_viva_dispatcher)):
    body = await request.body()
    reply = await dispatcher.handle(dict(request.headers), dict(request.query_params), body)
    return to_response(reply)


@router.post("/pos-notify", summary="POS gateway server-to-server notification")
async def mypos_notify(request: Request, dispatcher: MyPosNotifyDispatcher = Depends(get_mypos_notify_dispatcher)):
    ct = (request.headers.get("content-type") or "").lower()
    if FORM_CONTENT_TYPE not in ct:
        logger.warning("mypos_notify_unexpected_content_type", content_type=ct)
    raw_body = await request.body()
    notification = PaymentNotification.from_form(
        dispatcher.provider, dict(request.headers), raw_body, dict(request.query_params),
    )
    return to_response(await dispatcher.handle(notification))


@router.api_route("/pos-ok", methods=["GET", "POST"], summary="POS gateway success redirect")
async def mypos_ok(request: Request, dispatcher: MyPosRedirectDispatcher = Depends(get_mypos_redirect_dispatcher)):
    notification = await read_redirect_params(request, dispatcher.provider)
    return to_response(await dispatcher.success(notification))


@router.api_route("/pos-cancel", methods=["GET", "POST"], summary="POS gateway cancel redirect")
async def mypos_cancel(request: Request, dispatcher: MyPosRedirectDispatcher = Depends(get_mypos_redirect_dispatcher)):
    notification = await read_redirect_params(request, dispatcher.provider)
    return to_response(await dispatcher.cancel(notification))
