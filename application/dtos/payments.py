"""
Payment DTOs (Pydantic v2) used at application boundaries.

All of them are request-scoped values: built for one callback or one
checkout attempt and discarded once the response is produced.
"""
from __future__ import annotations

from typing import Any, Optional
from urllib.parse import parse_qsl
from pydantic import BaseModel, Field, ConfigDict, field_validator

# Common ISO-4217 currencies accepted for checkout (extend as needed)
ISO_4217 = {
    "EUR", "USD", "GBP", "CHF", "BGN", "RON", "PLN", "CZK", "HUF", "DKK", "SEK", "NOK",
}


class PaymentNotification(BaseModel):
    """One inbound provider callback."""

    provider: str
    headers: dict[str, Any] = Field(default_factory=dict)
    query: dict[str, Any] = Field(default_factory=dict)
    raw_body: bytes = b""
    fields: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def body_text(self) -> str:
        return self.raw_body.decode("utf-8", errors="replace")

    @classmethod
    def from_form(cls, provider: str, headers: dict[str, Any], raw_body: bytes, query: dict[str, Any] | None = None) -> "PaymentNotification":
        # Form order matters for the POS signature, dicts keep insertion order
        text = raw_body.decode("utf-8", errors="replace")
        fields = dict(parse_qsl(text, keep_blank_values=True))
        return cls(provider=provider, headers=headers, query=query or {}, raw_body=raw_body, fields=fields)

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


class TransactionOutcome(BaseModel):
    """Fields extracted from a single successful-payment notification."""

    event_type: Any = None
    order_code: Any = None
    transaction_id: Any = None
    status_code: Any = None
    amount: Any = None
    currency: Any = None
    merchant_reference: Optional[str] = None
    merchant_id: Any = None
    customer_email: Optional[str] = None
    full_name: Optional[str] = None
    card_number: Optional[str] = None
    order_id: Optional[str] = None
    event_id: Optional[str] = None
    download_url: Optional[str] = None

    @property
    def masked_card(self) -> str:
        return f"****{self.card_number[-4:]}" if self.card_number else "N/A"

    def reply_data(self) -> dict[str, Any]:
        return {
            "orderCode": self.order_code,
            "transactionId": self.transaction_id,
            "amount": self.amount,
            "currencyCode": self.currency,
            "merchantId": self.merchant_id,
            "orderId": self.order_id,
            "eventId": self.event_id,
        }


class CustomerContact(BaseModel):
    email: str
    first_name: str
    last_name: str
    phone: str
    country: str
    city: str
    zip_code: str
    address: str


class LineItem(BaseModel):
    item_id: str
    name: str = ""
    quantity: int = 1
    price: Optional[str] = None


class CheckoutRequest(BaseModel):
    amount: str
    currency: str = Field(default="EUR")
    order_id: str
    event_id: str
    description: str = "Order Payment"
    customer: CustomerContact
    success_url: str
    cancel_url: str
    notify_url: Optional[str] = None
    line_items: list[LineItem] = Field(default_factory=list)

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        if u not in ISO_4217:
            raise ValueError("unsupported currency")
        return u

    @field_validator("amount")
    @classmethod
    def _two_fraction_digits(cls, v: str) -> str:
        whole, _, frac = v.partition(".")
        if not whole.isdigit() or len(frac) != 2 or not frac.isdigit():
            raise ValueError("amount must be a decimal string with two fraction digits")
        return v

    @property
    def reference(self) -> str:
        """Compound `orderId:eventId` merchant reference."""
        return f"{self.order_id}:{self.event_id}"


class CheckoutError(BaseModel):
    code: str
    message: str

    def as_reply(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class SecretBundle(BaseModel):
    """Secrets resolved once at startup and injected into handlers."""

    mypos_signing_key: Optional[str] = None
    viva_webhook_secret: Optional[str] = None
