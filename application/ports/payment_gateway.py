"""
Payment provider ports (application/ports) exposing replaceable protocols.

Application depends on these Protocols; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import CheckoutRequest


@runtime_checkable
class CheckoutGateway(Protocol):
    """Creates a hosted checkout session and returns the URL to send the buyer to."""

    provider: str

    async def create_checkout_session(self, req: CheckoutRequest) -> str: ...


@runtime_checkable
class WebhookKeyProvider(Protocol):
    """Issues the key the card processor asks for when registering a webhook URL."""

    async def get_webhook_key(self) -> str: ...
