"""
API dependencies: build request handlers from what the lifespan put on app.state.

Long-lived collaborators (commerce client, provider clients, resolved secrets)
are created once at startup; the cheap per-request services are assembled
here so tests can swap any layer through ``app.dependency_overrides``.
"""
from fastapi import Depends, Request

from application.dtos.payments import SecretBundle
from application.ports.commerce import AuditSink, OrderGateway, RecordStore
from application.ports.payment_gateway import CheckoutGateway, WebhookKeyProvider
from application.services.audit import AuditTrail
from application.services.checkout_service import PaymentProviderPlugin, TransactionBuilder
from application.services.event_resolver import EventResolver
from application.services.mypos_webhook import MyPosNotifyDispatcher, MyPosRedirectDispatcher
from application.services.signature import AuthorizationGuard, SignatureVerifier
from application.services.viva_webhook import VivaWebhookDispatcher
from core.settings import PaymentSettings, payment_settings


def get_payment_settings() -> PaymentSettings:
    return payment_settings


def get_commerce(request: Request):
    """The commerce platform client; implements every commerce port."""
    return request.app.state.commerce


def get_secrets(request: Request) -> SecretBundle:
    return request.app.state.secrets


def get_key_provider(request: Request) -> WebhookKeyProvider:
    return request.app.state.key_provider


def get_checkout_gateway(request: Request) -> CheckoutGateway:
    return request.app.state.checkout_gateway


def get_audit_trail(
    sink: AuditSink = Depends(get_commerce),
    settings: PaymentSettings = Depends(get_payment_settings),
) -> AuditTrail:
    return AuditTrail(sink, collection=settings.commerce.logs_collection, timeout=settings.timeouts.outbound)


def get_signature_verifier(secrets: SecretBundle = Depends(get_secrets)) -> SignatureVerifier:
    return SignatureVerifier(secrets.mypos_signing_key)


def get_event_resolver(
    records: RecordStore = Depends(get_commerce),
    audit: AuditTrail = Depends(get_audit_trail),
    settings: PaymentSettings = Depends(get_payment_settings),
) -> EventResolver:
    return EventResolver(
        records,
        audit,
        orders_collection=settings.commerce.orders_collection,
        tickets_collection=settings.commerce.tickets_collection,
        timeout=settings.timeouts.outbound,
    )


def get_viva_dispatcher(
    orders: OrderGateway = Depends(get_commerce),
    audit: AuditTrail = Depends(get_audit_trail),
    secrets: SecretBundle = Depends(get_secrets),
    key_provider: WebhookKeyProvider = Depends(get_key_provider),
    settings: PaymentSettings = Depends(get_payment_settings),
) -> VivaWebhookDispatcher:
    guard = AuthorizationGuard(secrets.viva_webhook_secret, require_auth=settings.viva.require_auth)
    return VivaWebhookDispatcher(
        orders,
        audit,
        guard,
        key_provider,
        success_event_type=settings.viva.success_event_type,
        success_status=settings.viva.success_status,
        timeout=settings.timeouts.outbound,
    )


def get_mypos_notify_dispatcher(
    orders: OrderGateway = Depends(get_commerce),
    resolver: EventResolver = Depends(get_event_resolver),
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    audit: AuditTrail = Depends(get_audit_trail),
    settings: PaymentSettings = Depends(get_payment_settings),
) -> MyPosNotifyDispatcher:
    return MyPosNotifyDispatcher(orders, resolver, verifier, audit, timeout=settings.timeouts.outbound)


def get_mypos_redirect_dispatcher(
    resolver: EventResolver = Depends(get_event_resolver),
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    audit: AuditTrail = Depends(get_audit_trail),
    settings: PaymentSettings = Depends(get_payment_settings),
) -> MyPosRedirectDispatcher:
    redirects = settings.redirects
    return MyPosRedirectDispatcher(
        resolver,
        verifier,
        audit,
        thank_you_url=redirects.thank_you_url,
        site_root_url=redirects.site_root_url,
        status_code=redirects.status_code,
    )


def get_provider_plugin(
    records: RecordStore = Depends(get_commerce),
    gateway: CheckoutGateway = Depends(get_checkout_gateway),
    audit: AuditTrail = Depends(get_audit_trail),
    settings: PaymentSettings = Depends(get_payment_settings),
) -> PaymentProviderPlugin:
    builder = TransactionBuilder(
        records,
        settings.checkout,
        notify_url=settings.mypos.notify_url,
        tickets_collection=settings.commerce.tickets_collection,
        timeout=settings.timeouts.outbound,
    )
    return PaymentProviderPlugin(builder, gateway, audit)
