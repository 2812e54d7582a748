"""
Card processor (Viva) client.

Only the webhook verification key is fetched from the provider: Viva calls
our webhook URL with GET when it is registered and expects the key returned
by ``GET /api/messages/config/token`` (basic auth, merchant id + API key).
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from infrastructure.external.payments.base import TRANSIENT_ERRORS, BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError


class VivaClient(BasePaymentClient):
    provider = "viva"
    TOKEN_PATH = "/api/messages/config/token"

    def __init__(
        self,
        *,
        merchant_id: Optional[str],
        api_key: Optional[str],
        base_url: str = "https://www.vivapayments.com",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.merchant_id = merchant_id
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    async def get_webhook_key(self) -> str:
        if not self.merchant_id or not self.api_key:
            raise PaymentProviderError("Viva merchant credentials not configured", provider=self.provider)

        async def _do() -> httpx.Response:
            return await self.http.get(f"{self.base_url}{self.TOKEN_PATH}", auth=(self.merchant_id, self.api_key))

        try:
            resp = await self._retry(_do)
        except TRANSIENT_ERRORS as exc:
            raise PaymentRecoverableError(f"Viva unreachable: {exc}", provider=self.provider) from exc

        if resp.status_code != 200:
            raise PaymentProviderError(
                f"Viva token endpoint returned {resp.status_code}",
                provider=self.provider,
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise PaymentProviderError("Viva token response is not JSON", provider=self.provider) from exc
        key = (data or {}).get("Key") or ""
        self._log("webhook_key_fetched", present=bool(key))
        return key
