"""
Payment-provider plugin routes called by the commerce platform.

Unlike the webhook routes, checkout failures propagate: the global handler
turns CheckoutCreationFailure into a 502 so the platform shows the buyer an
error instead of a dead payment page.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends

from api.dependencies import get_provider_plugin
from application.services.checkout_service import PaymentProviderPlugin


router = APIRouter(prefix="/provider", tags=["Payment Provider"])


@router.get("/config", summary="Provider configuration descriptor")
async def provider_config(plugin: PaymentProviderPlugin = Depends(get_provider_plugin)):
    return plugin.get_config()


@router.post("/connect-account", summary="Connect merchant account")
async def connect_account(
    options: Optional[dict[str, Any]] = Body(default=None),
    plugin: PaymentProviderPlugin = Depends(get_provider_plugin),
):
    return await plugin.connect_account(options)


@router.post("/create-transaction", summary="Create checkout for an order")
async def create_transaction(
    options: Optional[dict[str, Any]] = Body(default=None),
    plugin: PaymentProviderPlugin = Depends(get_provider_plugin),
):
    return await plugin.create_transaction(options)


@router.post("/refund-transaction", summary="Refund (not supported)")
async def refund_transaction(
    options: Optional[dict[str, Any]] = Body(default=None),
    plugin: PaymentProviderPlugin = Depends(get_provider_plugin),
):
    return await plugin.refund_transaction(options)
