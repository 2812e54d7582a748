import pytest

from application.dtos.payments import CheckoutError, CheckoutRequest
from application.services.checkout_service import (
    PaymentProviderPlugin,
    TransactionBuilder,
    clean_description,
)
from core.settings import CheckoutSettings
from domain.common.exceptions import CheckoutCreationFailure


EVENT_ID = "3f2b6c1e-9a4d-4c8b-8e2f-1a2b3c4d5e6f"
OTHER_EVENT_ID = "7d1e2f3a-4b5c-4d6e-9f70-8a9b0c1d2e3f"
TICKET_A = "0b7f7a52-1c3d-4e5f-8a9b-0c1d2e3f4a5b"
TICKET_B = "1c8e8b63-2d4e-4f60-9bac-1d2e3f4a5b6c"


def make_order(**overrides) -> dict:
    order = {
        "_id": "order-1",
        "totalAmount": "2550",
        "description": {
            "currency": "eur",
            "items": [
                {"_id": TICKET_A, "name": "VIP <b>Pass</b>!", "quantity": 1, "price": "25.50"},
                {"_id": "legacy-item"},
            ],
            "billingAddress": {"email": "ana@example.com", "firstName": "Ana"},
        },
    }
    order.update(overrides)
    return order


class RecordingGateway:
    provider = "mypos"

    def __init__(self, error=None):
        self.error = error
        self.requests: list[CheckoutRequest] = []

    async def create_checkout_session(self, req: CheckoutRequest) -> str:
        self.requests.append(req)
        if self.error:
            raise self.error
        return "data:text/html;base64,PGh0bWw+"


@pytest.fixture
def builder(commerce) -> TransactionBuilder:
    commerce.collections["Events/Tickets"] = [
        {"_id": TICKET_A, "event": EVENT_ID},
        {"_id": TICKET_B, "event": OTHER_EVENT_ID},
    ]
    return TransactionBuilder(commerce, CheckoutSettings(), notify_url="https://pay.example.com/pos-notify", timeout=1.0)


@pytest.mark.asyncio
async def test_build_produces_checkout_request(builder):
    req = await builder.build(make_order())

    assert isinstance(req, CheckoutRequest)
    assert req.amount == "25.50"
    assert req.currency == "EUR"
    assert (req.order_id, req.event_id) == ("order-1", EVENT_ID)
    assert req.reference == f"order-1:{EVENT_ID}"
    assert req.description == "VIP Pass"
    assert req.success_url == f"https://www.live-ls.com/thank-you?tid=order-1&oid=order-1&eid={EVENT_ID}"
    assert req.cancel_url == "https://www.live-ls.com/?tid=order-1"
    assert req.notify_url == "https://pay.example.com/pos-notify"
    assert [item.item_id for item in req.line_items] == [TICKET_A]


@pytest.mark.asyncio
async def test_build_fills_missing_contact_with_placeholders(builder):
    req = await builder.build(make_order())

    assert req.customer.email == "ana@example.com"
    assert req.customer.first_name == "Ana"
    assert req.customer.last_name == "Name"
    assert req.customer.phone == "+34000000000"
    assert req.customer.country == "ESP"
    assert (req.customer.city, req.customer.zip_code, req.customer.address) == ("N/A", "N/A", "N/A")


@pytest.mark.asyncio
async def test_contact_falls_back_to_order_level_buyer_info(builder):
    order = make_order(buyerInfo={"email": "buyer@example.com", "lastName": "Silva"})
    order["description"].pop("billingAddress")
    req = await builder.build(order)

    assert req.customer.email == "buyer@example.com"
    assert req.customer.last_name == "Silva"
    assert req.customer.first_name == "Customer"


@pytest.mark.asyncio
async def test_no_uuid_items_is_rejected(builder, commerce):
    order = make_order()
    order["description"]["items"] = [{"_id": "legacy-item"}, {"name": "no id"}]
    result = await builder.build(order)

    assert isinstance(result, CheckoutError)
    assert result.code == "NO_VALID_ITEMS"
    assert commerce.lookups() == []


@pytest.mark.asyncio
async def test_unknown_tickets_are_rejected(builder):
    order = make_order()
    order["description"]["items"] = [{"_id": "9d9d9d9d-1111-4222-8333-444455556666"}]
    result = await builder.build(order)
    assert result.code == "NO_VALID_TICKETS"


@pytest.mark.asyncio
async def test_tickets_from_two_events_are_rejected(builder):
    order = make_order()
    order["description"]["items"] = [{"_id": TICKET_A}, {"_id": TICKET_B}]
    result = await builder.build(order)
    assert result.code == "MULTIPLE_EVENTS"


@pytest.mark.asyncio
@pytest.mark.parametrize("total", ["abc", "12.345", None])
async def test_invalid_total_is_rejected(builder, total):
    result = await builder.build(make_order(totalAmount=total))
    assert isinstance(result, CheckoutError)
    assert result.code == "INVALID_AMOUNT"


@pytest.mark.asyncio
async def test_total_falls_back_to_description(builder):
    order = make_order()
    order.pop("totalAmount")
    order["description"]["totalAmount"] = "10.5"
    req = await builder.build(order)
    assert req.amount == "10.50"


@pytest.mark.asyncio
async def test_unsupported_currency_uses_default(builder):
    order = make_order()
    order["description"]["currency"] = "XYZ"
    req = await builder.build(order)
    assert req.currency == "EUR"


@pytest.mark.parametrize(
    "text,expected",
    [
        (None, "Order Payment"),
        ("", "Order Payment"),
        ("<p>Concert &amp; Party</p>", "Concert amp Party"),
        ("A very long description of the event", "A very long descript"),
        ("!!!", "Order Payment"),
    ],
)
def test_clean_description(text, expected):
    assert clean_description(text) == expected


@pytest.mark.asyncio
async def test_create_transaction_returns_redirect_url(builder, audit, commerce):
    gateway = RecordingGateway()
    plugin = PaymentProviderPlugin(builder, gateway, audit)

    result = await plugin.create_transaction({"order": make_order()})

    assert result == {"redirectUrl": "data:text/html;base64,PGh0bWw+"}
    assert gateway.requests[0].event_id == EVENT_ID
    assert commerce.phases()[-1] == "checkout_created"


@pytest.mark.asyncio
async def test_create_transaction_returns_builder_error(builder, audit):
    gateway = RecordingGateway()
    plugin = PaymentProviderPlugin(builder, gateway, audit)
    order = make_order()
    order["description"]["items"] = []

    result = await plugin.create_transaction({"order": order})

    assert result["code"] == "NO_VALID_ITEMS"
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_gateway_failure_propagates_with_storage_hint(builder, audit, commerce):
    plugin = PaymentProviderPlugin(builder, RecordingGateway(RuntimeError("collection MyPosConfig not found")), audit)

    with pytest.raises(CheckoutCreationFailure) as exc:
        await plugin.create_transaction({"order": make_order()})

    assert exc.value.details["hint"] == "collection_naming"
    assert commerce.phases()[-1] == "checkout_error"


@pytest.mark.asyncio
async def test_gateway_failure_without_storage_wording_has_no_hint(builder, audit):
    plugin = PaymentProviderPlugin(builder, RecordingGateway(RuntimeError("timeout")), audit)

    with pytest.raises(CheckoutCreationFailure) as exc:
        await plugin.create_transaction({"order": make_order()})

    assert "hint" not in exc.value.details


@pytest.mark.asyncio
async def test_plugin_contract_helpers(builder, audit):
    plugin = PaymentProviderPlugin(builder, RecordingGateway(), audit)

    config = plugin.get_config()
    assert config["title"] == "Cartão, Apple Pay e Google Pay"
    assert "hostedPage" in config["paymentMethods"][0]
    assert config["credentialsFields"][0]["simpleField"]["name"] == "myPOS Payments Key"

    assert await plugin.connect_account({"credentials": {"key": "k"}}) == {"credentials": {"key": "k"}}
    refund = await plugin.refund_transaction({"wixTransactionId": "t-1"})
    assert refund["code"] == "NOT_IMPLEMENTED"


@pytest.mark.asyncio
@pytest.mark.parametrize("ticket", [{"_id": TICKET_A}, {"_id": TICKET_A, "event": "not-a-uuid"}])
async def test_ticket_without_valid_event_is_rejected(commerce, ticket):
    commerce.collections["Events/Tickets"] = [ticket]
    builder = TransactionBuilder(commerce, CheckoutSettings(), notify_url="https://pay.example.com/pos-notify")

    result = await builder.build(make_order())

    assert isinstance(result, CheckoutError)
    assert result.code == "NO_VALID_TICKETS"


@pytest.mark.asyncio
async def test_ticket_with_invalid_event_is_skipped_among_valid_ones(commerce):
    commerce.collections["Events/Tickets"] = [{"_id": TICKET_A, "event": EVENT_ID}, {"_id": TICKET_B}]
    builder = TransactionBuilder(commerce, CheckoutSettings())
    order = make_order()
    order["description"]["items"] = [{"_id": TICKET_A}, {"_id": TICKET_B}]

    req = await builder.build(order)

    assert req.event_id == EVENT_ID
    assert [item.item_id for item in req.line_items] == [TICKET_A]


@pytest.mark.asyncio
async def test_plain_http_return_urls_are_upgraded(commerce):
    commerce.collections["Events/Tickets"] = [{"_id": TICKET_A, "event": EVENT_ID}]
    settings = CheckoutSettings(
        success_base_url="http://tickets.example.com/thank-you",
        cancel_base_url="tickets.example.com/",
    )

    req = await TransactionBuilder(commerce, settings).build(make_order())

    assert req.success_url == f"https://tickets.example.com/thank-you?tid=order-1&oid=order-1&eid={EVENT_ID}"
    assert req.cancel_url == "https://tickets.example.com/?tid=order-1"


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity,expected", [("two", 1), (None, 1), ("0", 1), ("3", 3)])
async def test_unusable_quantity_falls_back_to_one(builder, quantity, expected):
    order = make_order()
    order["description"]["items"][0]["quantity"] = quantity

    req = await builder.build(order)

    assert isinstance(req, CheckoutRequest)
    assert req.line_items[0].quantity == expected
