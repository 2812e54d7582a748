import json

import pytest

from application.services.signature import AuthorizationGuard
from application.services.viva_webhook import VivaWebhookDispatcher


EVENT_ID = "3f2b6c1e-9a4d-4c8b-8e2f-1a2b3c4d5e6f"


def viva_payload(event_type=1796, **overrides) -> bytes:
    data = {
        "OrderCode": 1234567890123456,
        "TransactionId": "b1a2c3d4-0000-4000-8000-000000000001",
        "StatusId": "F",
        "Amount": 25.5,
        "CurrencyCode": "978",
        "MerchantTrns": f"order-1:{EVENT_ID}",
        "MerchantId": "merchant-1",
        "Email": "buyer@example.com",
        "CardNumber": "414746XXXXXX0133",
    }
    data.update(overrides)
    return json.dumps({"EventTypeId": event_type, "EventData": data}).encode()


class StubKeyProvider:
    def __init__(self, key=None, error=None):
        self.key = key
        self.error = error

    async def get_webhook_key(self) -> str:
        if self.error:
            raise self.error
        return self.key


def make_dispatcher(commerce, audit, *, shared_key=None, require_auth=False, key_provider=None):
    guard = AuthorizationGuard(shared_key, require_auth=require_auth)
    return VivaWebhookDispatcher(commerce, audit, guard, key_provider, timeout=1.0)


@pytest.mark.asyncio
async def test_successful_payment_confirms_order_and_fetches_tickets(commerce, audit):
    reply = await make_dispatcher(commerce, audit).handle({}, {}, viva_payload())

    assert reply.status_code == 200
    assert reply.body["code"] == "SUCCESS"
    assert reply.body["data"]["orderId"] == "order-1"
    assert reply.body["data"]["eventId"] == EVENT_ID
    assert reply.body["data"]["transactionId"] == "b1a2c3d4-0000-4000-8000-000000000001"
    assert commerce.confirmed == [(EVENT_ID, {"orderNumber": ["order-1"]})]
    assert commerce.order_requests == [
        ({"eventId": EVENT_ID, "orderNumber": "order-1"}, {"fieldset": ["TICKETS", "DETAILS"]}),
    ]
    assert commerce.phases() == ["webhook_data", "webhook_order_confirm", "get_order_complete"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body,code",
    [
        (viva_payload(event_type=1797), "INVALID_EVENT_TYPE"),
        (viva_payload(event_type=True), "INVALID_EVENT_TYPE"),
        (viva_payload(event_type="1796"), "INVALID_EVENT_TYPE"),
        (json.dumps([1, 2]).encode(), "INVALID_EVENT_TYPE"),
        (viva_payload(TransactionId=None), "MISSING_FIELDS"),
        (viva_payload(MerchantTrns=""), "MISSING_FIELDS"),
        (viva_payload(Amount=None), "MISSING_FIELDS"),
        (viva_payload(StatusId="E"), "TRANSACTION_NOT_SUCCESSFUL"),
        (viva_payload(Amount=0), "INVALID_AMOUNT"),
        (viva_payload(Amount=-3), "INVALID_AMOUNT"),
        (viva_payload(Amount="25.50"), "INVALID_AMOUNT"),
    ],
)
async def test_structural_errors_return_400(commerce, audit, body, code):
    reply = await make_dispatcher(commerce, audit).handle({}, {}, body)

    assert reply.status_code == 400
    assert reply.body["code"] == code
    assert commerce.confirmed == []
    assert "webhook_validation_error" in commerce.phases()


@pytest.mark.asyncio
async def test_not_successful_message_names_the_status(commerce, audit):
    reply = await make_dispatcher(commerce, audit).handle({}, {}, viva_payload(StatusId="E"))
    assert "E" in reply.body["message"]
    assert "'F'" in reply.body["message"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reference,code",
    [
        ("order-without-event", "INVALID_MERCHANT_TRNS"),
        (f":{EVENT_ID}", "INVALID_MERCHANT_TRNS"),
        ("order-1:not-a-uuid", "INVALID_EVENT_ID"),
    ],
)
async def test_reference_errors_are_acknowledged_with_200(commerce, audit, reference, code):
    reply = await make_dispatcher(commerce, audit).handle({}, {}, viva_payload(MerchantTrns=reference))

    assert reply.status_code == 200
    assert reply.body["code"] == code
    assert commerce.confirmed == []


@pytest.mark.asyncio
async def test_confirm_failure_is_non_fatal(commerce, audit):
    commerce.failing.add("confirm_order")
    reply = await make_dispatcher(commerce, audit).handle({}, {}, viva_payload())

    assert reply.status_code == 200
    assert reply.body["code"] == "SUCCESS"
    assert "webhook_order_confirm_error" in commerce.phases()
    assert commerce.calls.count("get_order") == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("tickets", [[], [{"name": "no url"}]])
async def test_missing_tickets_are_recorded_not_fatal(commerce, audit, tickets):
    commerce.order_tickets = tickets
    reply = await make_dispatcher(commerce, audit).handle({}, {}, viva_payload())

    assert reply.status_code == 200
    assert reply.body["code"] == "SUCCESS"
    assert commerce.phases()[-1] == "get_order_error"


@pytest.mark.asyncio
async def test_unparseable_body_is_acknowledged(commerce, audit):
    reply = await make_dispatcher(commerce, audit).handle({}, {}, b"{not json")

    assert reply.status_code == 200
    assert reply.body["code"] == "ACKNOWLEDGED"
    assert commerce.phases() == ["webhook_processing_error"]


@pytest.mark.asyncio
async def test_wrong_credential_is_rejected_with_401(commerce, audit):
    dispatcher = make_dispatcher(commerce, audit, shared_key="s3cret")
    reply = await dispatcher.handle({"Authorization": "Bearer wrong"}, {}, viva_payload())

    assert reply.status_code == 401
    assert reply.body["code"] == "UNAUTHORIZED"
    assert commerce.confirmed == []
    assert commerce.phases() == ["webhook_unauthorized"]


@pytest.mark.asyncio
async def test_missing_credential_rejected_when_auth_required(commerce, audit):
    dispatcher = make_dispatcher(commerce, audit, shared_key="s3cret", require_auth=True)
    reply = await dispatcher.handle({}, {}, viva_payload())
    assert reply.status_code == 401


@pytest.mark.asyncio
async def test_matching_query_credential_is_accepted(commerce, audit):
    dispatcher = make_dispatcher(commerce, audit, shared_key="s3cret", require_auth=True)
    reply = await dispatcher.handle({}, {"auth": "s3cret"}, viva_payload())
    assert reply.status_code == 200
    assert reply.body["code"] == "SUCCESS"


@pytest.mark.asyncio
async def test_verification_key_success(commerce, audit):
    dispatcher = make_dispatcher(commerce, audit, key_provider=StubKeyProvider(key="ABC123"))
    reply = await dispatcher.verification_key()
    assert (reply.status_code, reply.body) == (200, {"Key": "ABC123"})


@pytest.mark.asyncio
async def test_verification_key_empty_is_400(commerce, audit):
    dispatcher = make_dispatcher(commerce, audit, key_provider=StubKeyProvider(key=""))
    reply = await dispatcher.verification_key()
    assert reply.status_code == 400
    assert "error" in reply.body


@pytest.mark.asyncio
@pytest.mark.parametrize("provider", [StubKeyProvider(error=RuntimeError("boom")), None])
async def test_verification_key_error_is_500(commerce, audit, provider):
    reply = await make_dispatcher(commerce, audit, key_provider=provider).verification_key()
    assert reply.status_code == 500
    assert "error" in reply.body


@pytest.mark.asyncio
@pytest.mark.parametrize("constant", [float("nan"), float("inf"), float("-inf")])
async def test_non_standard_json_constants_are_acknowledged_without_confirming(commerce, audit, constant):
    reply = await make_dispatcher(commerce, audit).handle({}, {}, viva_payload(Amount=constant))

    assert reply.status_code == 200
    assert reply.body["code"] == "ACKNOWLEDGED"
    assert commerce.confirmed == []


@pytest.mark.asyncio
async def test_overflowing_amount_is_rejected_with_400(commerce, audit):
    body = viva_payload().replace(b'"Amount": 25.5', b'"Amount": 1e999')
    reply = await make_dispatcher(commerce, audit).handle({}, {}, body)

    assert reply.status_code == 400
    assert reply.body["code"] == "INVALID_AMOUNT"
    assert commerce.confirmed == []
