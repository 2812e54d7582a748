"""
Factory for payment provider clients.
"""
from __future__ import annotations

from application.dtos.payments import SecretBundle
from application.ports.payment_gateway import CheckoutGateway, WebhookKeyProvider
from application.services.signature import SignatureVerifier
from core.settings import PaymentSettings, payment_settings


def _http_options(settings: PaymentSettings) -> dict:
    return {
        "timeouts": settings.timeouts.model_dump(exclude={"outbound"}),
        "retry": {"max": settings.retry.max, "base": settings.retry.base_backoff},
    }


def get_checkout_gateway(
    secrets: SecretBundle, provider: str = "mypos", settings: PaymentSettings = payment_settings,
) -> CheckoutGateway:
    name = provider.lower()
    if name == "mypos":
        from .mypos_client import MyPosCheckoutClient
        cfg = settings.mypos
        return MyPosCheckoutClient(
            signer=SignatureVerifier(secrets.mypos_signing_key),
            sid=cfg.sid,
            wallet_number=cfg.wallet_number,
            key_index=cfg.key_index,
            checkout_url=cfg.checkout_url,
            language=cfg.language,
            ipc_version=cfg.ipc_version,
            **_http_options(settings),
        )
    raise ValueError(f"Unsupported checkout provider: {name}")


def get_webhook_key_provider(settings: PaymentSettings = payment_settings) -> WebhookKeyProvider:
    from .viva_client import VivaClient
    cfg = settings.viva
    return VivaClient(
        merchant_id=cfg.merchant_id,
        api_key=cfg.api_key,
        base_url=cfg.base_url,
        **_http_options(settings),
    )
