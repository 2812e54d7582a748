import base64
import json
import re

import httpx
import pytest

from application.dtos.payments import CheckoutRequest, CustomerContact, SecretBundle
from application.services.signature import SignatureVerifier
from domain.common.exceptions import DownstreamFailure
from infrastructure.external.commerce import CommercePlatformClient
from infrastructure.external.payments import get_checkout_gateway, get_webhook_key_provider
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)
from infrastructure.external.payments.mypos_client import MyPosCheckoutClient
from infrastructure.external.payments.viva_client import VivaClient


EVENT_ID = "3f2b6c1e-9a4d-4c8b-8e2f-1a2b3c4d5e6f"


def checkout_request() -> CheckoutRequest:
    return CheckoutRequest(
        amount="25.50",
        currency="EUR",
        order_id="order-1",
        event_id=EVENT_ID,
        description="VIP Pass",
        customer=CustomerContact(
            email="ana@example.com", first_name="Ana", last_name="Name", phone="+34000000000",
            country="ESP", city="N/A", zip_code="N/A", address="N/A",
        ),
        success_url="https://www.live-ls.com/thank-you?tid=order-1",
        cancel_url="https://www.live-ls.com/?tid=order-1",
        notify_url="https://pay.example.com/api/v1/webhooks/pos-notify",
    )


def mypos_client(secret="k", **overrides) -> MyPosCheckoutClient:
    options = {"sid": "000000000000010", "wallet_number": "61938166610"}
    options.update(overrides)
    return MyPosCheckoutClient(signer=SignatureVerifier(secret), **options)


@pytest.mark.asyncio
async def test_mypos_checkout_returns_signed_auto_submit_form():
    url = await mypos_client().create_checkout_session(checkout_request())

    assert url.startswith("data:text/html;base64,")
    page = base64.b64decode(url.split(",", 1)[1]).decode("utf-8")
    fields = dict(re.findall(r'name="([^"]+)" value="([^"]*)"', page))
    assert fields["IPCmethod"] == "IPCPurchase"
    assert fields["OrderID"] == "order-1"
    assert fields["Note"] == EVENT_ID
    assert fields["Amount"] == "25.50"
    assert 'action="https://www.mypos.com/vmp/checkout"' in page
    assert SignatureVerifier("k").verify(fields, fields["Signature"]) is True


@pytest.mark.asyncio
async def test_mypos_checkout_requires_wallet_configuration():
    with pytest.raises(PaymentProviderError):
        await mypos_client(sid=None).create_checkout_session(checkout_request())


@pytest.mark.asyncio
async def test_mypos_checkout_requires_signing_key():
    with pytest.raises(PaymentSignatureError):
        await mypos_client(secret=None).create_checkout_session(checkout_request())


def test_factories_build_provider_clients():
    assert isinstance(get_checkout_gateway(SecretBundle(mypos_signing_key="k")), MyPosCheckoutClient)
    assert isinstance(get_webhook_key_provider(), VivaClient)
    with pytest.raises(ValueError):
        get_checkout_gateway(SecretBundle(), provider="stripe")


@pytest.mark.asyncio
async def test_viva_client_fetches_key_with_basic_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"Key": "ABC123"})

    client = VivaClient(merchant_id="m", api_key="secret", transport=httpx.MockTransport(handler))
    assert await client.get_webhook_key() == "ABC123"
    assert seen["path"] == "/api/messages/config/token"
    assert seen["auth"] == "Basic " + base64.b64encode(b"m:secret").decode()
    await client.aclose()


@pytest.mark.asyncio
async def test_viva_client_rejects_error_status():
    client = VivaClient(
        merchant_id="m", api_key="secret", transport=httpx.MockTransport(lambda r: httpx.Response(401)),
    )
    with pytest.raises(PaymentProviderError):
        await client.get_webhook_key()
    await client.aclose()


@pytest.mark.asyncio
async def test_viva_client_requires_credentials():
    with pytest.raises(PaymentProviderError):
        await VivaClient(merchant_id=None, api_key=None).get_webhook_key()


def commerce_client(handler) -> CommercePlatformClient:
    return CommercePlatformClient(
        "https://commerce.example.com/_api",
        api_key="platform-key",
        max_retries=0,
        retry_delay=0.01,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_commerce_query_sends_filter_and_returns_items():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"items": [{"_id": "t1", "event": EVENT_ID}]})

    client = commerce_client(handler)
    items = await client.query("Events/Tickets", has_some={"_id": ["t1"]}, limit=5)

    assert items == [{"_id": "t1", "event": EVENT_ID}]
    assert seen["path"].endswith("/query")
    assert "Events" in seen["path"] and "Tickets" in seen["path"]
    assert seen["auth"] == "Bearer platform-key"
    assert seen["body"] == {"filter": {"hasSome": {"_id": ["t1"]}}, "limit": 5}
    await client.close()


@pytest.mark.asyncio
async def test_commerce_get_missing_record_raises():
    client = commerce_client(lambda r: httpx.Response(404, json={"message": "not found"}))
    with pytest.raises(DownstreamFailure):
        await client.get("Events/Orders", "order-1")
    await client.close()


@pytest.mark.asyncio
async def test_commerce_server_error_becomes_downstream_failure():
    client = commerce_client(lambda r: httpx.Response(503))
    with pytest.raises(DownstreamFailure) as exc:
        await client.confirm_order(EVENT_ID, {"orderNumber": ["order-1"]})
    assert exc.value.details["operation"] == "confirm_order"
    await client.close()


@pytest.mark.asyncio
async def test_commerce_secret_and_ticket_lookups():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/secrets/myPosSigningKey"):
            return httpx.Response(200, json={"value": "signing-key"})
        if request.url.path.endswith("/events/orders/get"):
            return httpx.Response(200, json={"tickets": [{"pdfUrl": "https://t/1.pdf"}]})
        return httpx.Response(200, json={})

    client = commerce_client(handler)
    assert await client.get_secret("myPosSigningKey") == "signing-key"
    assert await client.get_order({"eventId": EVENT_ID, "orderNumber": "order-1"}, {"fieldset": ["TICKETS"]}) == [
        {"pdfUrl": "https://t/1.pdf"},
    ]
    await client.close()


@pytest.mark.asyncio
async def test_viva_client_unreachable_is_recoverable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = VivaClient(
        merchant_id="m", api_key="secret", retry={"max": 0, "base": 0.01}, transport=httpx.MockTransport(handler),
    )
    with pytest.raises(PaymentRecoverableError) as exc:
        await client.get_webhook_key()
    assert exc.value.details == {"provider": "viva"}
    await client.aclose()


@pytest.mark.asyncio
async def test_commerce_transient_status_is_retried():
    statuses = [503, 200]

    def handler(request: httpx.Request) -> httpx.Response:
        status = statuses.pop(0)
        return httpx.Response(status, json={"items": [{"_id": "t1"}]} if status == 200 else None)

    client = CommercePlatformClient(
        "https://commerce.example.com/_api",
        max_retries=1,
        retry_delay=0.01,
        transport=httpx.MockTransport(handler),
    )
    assert await client.query("Events/Tickets", eq={"_id": "t1"}) == [{"_id": "t1"}]
    assert statuses == []
    await client.close()


@pytest.mark.asyncio
async def test_commerce_client_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"message": "bad filter"})

    client = CommercePlatformClient("https://commerce.example.com/_api", max_retries=2, transport=httpx.MockTransport(handler))
    with pytest.raises(DownstreamFailure) as exc:
        await client.query("Events/Tickets", eq={"x": 1})
    assert exc.value.message == "bad filter"
    assert len(calls) == 1
    await client.close()
