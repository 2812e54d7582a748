"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings; every provider, collaborator and
redirect target is configured here (e.g. PAYMENT__VIVA__REQUIRE_AUTH=true).
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    # upper bound around each collaborator call made by a handler
    outbound: float = 10.0
    connect: float = 2.0
    read: float = 8.0
    write: float = 8.0
    total: float = 10.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class CommerceSettings(BaseModel):
    base_url: str = "http://localhost:8080/_api"
    api_key: Optional[str] = None
    logs_collection: str = "logs"
    orders_collection: str = "Events/Orders"
    tickets_collection: str = "Events/Tickets"


class SecretNames(BaseModel):
    mypos_signing_key: str = "myPosSigningKey"
    viva_webhook_secret: str = "vivaWebhookSecret"


class VivaSettings(BaseModel):
    merchant_id: Optional[str] = None
    api_key: Optional[str] = None
    base_url: str = "https://www.vivapayments.com"
    # Provisional bypass: when False, requests carrying no credential at all are permitted.
    require_auth: bool = False
    success_event_type: int = 1796
    success_status: str = "F"


class MyPosSettings(BaseModel):
    sid: Optional[str] = None
    wallet_number: Optional[str] = None
    key_index: int = 1
    checkout_url: str = "https://www.mypos.com/vmp/checkout"
    notify_url: str = "https://www.live-ls.com/_functions/myposNotify"
    language: str = "EN"
    ipc_version: str = "1.4"


class RedirectSettings(BaseModel):
    thank_you_url: str = "https://www.live-ls.com/thank-you"
    site_root_url: str = "https://www.live-ls.com/"
    # the provider contract answers redirects with 200 + Location
    status_code: int = 200


class CheckoutPlaceholders(BaseModel):
    """Values sent when an order carries no customer data; the POS gateway rejects empty fields."""

    email: str = "customer@example.com"
    first_name: str = "Customer"
    last_name: str = "Name"
    phone: str = "+34000000000"
    country: str = "ESP"
    city: str = "N/A"
    zip_code: str = "N/A"
    address: str = "N/A"


class CheckoutSettings(BaseModel):
    success_base_url: str = "https://www.live-ls.com/thank-you"
    cancel_base_url: str = "https://www.live-ls.com/"
    default_currency: str = "EUR"
    placeholders: CheckoutPlaceholders = Field(default_factory=CheckoutPlaceholders)


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)

    commerce: CommerceSettings = Field(default_factory=CommerceSettings)
    secrets: SecretNames = Field(default_factory=SecretNames)
    viva: VivaSettings = Field(default_factory=VivaSettings)
    mypos: MyPosSettings = Field(default_factory=MyPosSettings)
    redirects: RedirectSettings = Field(default_factory=RedirectSettings)
    checkout: CheckoutSettings = Field(default_factory=CheckoutSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
