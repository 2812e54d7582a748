"""
POS gateway (myPOS) hosted checkout.

myPOS Checkout has no session API: the buyer's browser must POST a signed
IPCPurchase form to the checkout URL. The form is rendered as a small
auto-submitting page and handed back as a ``data:`` URL the platform can
redirect to.
"""
from __future__ import annotations

import base64
import html
from typing import Any, Optional

from application.dtos.payments import CheckoutRequest
from application.services.signature import SIGNATURE_FIELD, SignatureVerifier
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError


class MyPosCheckoutClient(BasePaymentClient):
    provider = "mypos"

    def __init__(
        self,
        *,
        signer: SignatureVerifier,
        sid: Optional[str],
        wallet_number: Optional[str],
        key_index: int = 1,
        checkout_url: str = "https://www.mypos.com/vmp/checkout",
        language: str = "EN",
        ipc_version: str = "1.4",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.signer = signer
        self.sid = sid
        self.wallet_number = wallet_number
        self.key_index = key_index
        self.checkout_url = checkout_url
        self.language = language
        self.ipc_version = ipc_version

    def purchase_fields(self, req: CheckoutRequest) -> dict[str, str]:
        """IPCPurchase form fields in signing order (without Signature)."""
        if not self.sid or not self.wallet_number:
            raise PaymentProviderError("myPOS SID / wallet number not configured", provider=self.provider)

        customer = req.customer
        fields: dict[str, str] = {
            "IPCmethod": "IPCPurchase",
            "IPCVersion": self.ipc_version,
            "IPCLanguage": self.language,
            "SID": self.sid,
            "WalletNumber": self.wallet_number,
            "KeyIndex": str(self.key_index),
            "Amount": req.amount,
            "Currency": req.currency,
            # OrderID carries the plain order id and Note the event id; callbacks read both back
            "OrderID": req.order_id,
            "Note": req.event_id,
            "URL_OK": req.success_url,
            "URL_Cancel": req.cancel_url,
            "URL_Notify": req.notify_url or "",
            "CardTokenRequest": "0",
            "PaymentParametersRequired": "1",
            "customeremail": customer.email,
            "customerphone": customer.phone,
            "customerfirstnames": customer.first_name,
            "customerfamilyname": customer.last_name,
            "customercountry": customer.country,
            "customercity": customer.city,
            "customerzipcode": customer.zip_code,
            "customeraddress": customer.address,
        }

        # the cart must add up to Amount exactly, so the order goes as one article
        fields.update({
            "CartItems": "1",
            "Article_1": req.description,
            "Quantity_1": "1",
            "Price_1": req.amount,
            "Currency_1": req.currency,
            "Amount_1": req.amount,
        })
        return fields

    def render_form(self, fields: dict[str, str]) -> str:
        inputs = "".join(
            f'<input type="hidden" name="{html.escape(k)}" value="{html.escape(v)}"/>' for k, v in fields.items()
        )
        return (
            "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head>"
            "<body onload=\"document.forms[0].submit()\">"
            f"<form method=\"POST\" action=\"{html.escape(self.checkout_url)}\">{inputs}</form>"
            "</body></html>"
        )

    async def create_checkout_session(self, req: CheckoutRequest) -> str:
        fields = self.purchase_fields(req)
        try:
            fields[SIGNATURE_FIELD] = self.signer.sign(fields)
        except RuntimeError as exc:
            raise PaymentSignatureError(str(exc), provider=self.provider) from exc

        page = self.render_form(fields)
        self._log("checkout_form_built", order_id=req.order_id, amount=req.amount, currency=req.currency)
        return "data:text/html;base64," + base64.b64encode(page.encode("utf-8")).decode("ascii")
