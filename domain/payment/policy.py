"""
Per-provider response policy.

Each provider dictates how receipt must be acknowledged. The card processor
retries anything that is not a 200 once a payload has been authenticated, so
only structural rejections map to 400 there; the POS gateway accepts nothing
but a plain-text ``OK``. The table keeps that asymmetry in one place.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from shared.codes.payment_codes import WebhookCode


JSON = "application/json"
PLAIN_TEXT = "text/plain"


class Outcome(str, Enum):
    SUCCESS = "success"
    UNAUTHORIZED = "unauthorized"
    INVALID_EVENT_TYPE = "invalid_event_type"
    MISSING_FIELDS = "missing_fields"
    NOT_SUCCESSFUL = "not_successful"
    INVALID_AMOUNT = "invalid_amount"
    MALFORMED_REFERENCE = "malformed_reference"
    INVALID_EVENT_ID = "invalid_event_id"
    INTERNAL_ERROR = "internal_error"
    # verification key endpoint
    KEY_ISSUED = "key_issued"
    KEY_MISSING = "key_missing"
    KEY_ERROR = "key_error"
    # POS notifications
    MISSING_SIGNATURE = "missing_signature"
    INVALID_SIGNATURE = "invalid_signature"
    ROLLBACK = "rollback"
    IGNORED = "ignored"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class ResponseRule:
    status_code: int
    media_type: str
    code: Optional[WebhookCode] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class WebhookReply:
    """Transport-neutral reply; the API layer turns it into a Response."""

    status_code: int
    media_type: str
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)


_PLAIN_OK = ResponseRule(200, PLAIN_TEXT)

RESPONSE_POLICY: dict[str, dict[Outcome, ResponseRule]] = {
    "viva": {
        Outcome.SUCCESS: ResponseRule(200, JSON, WebhookCode.SUCCESS, "Transaction processed successfully"),
        Outcome.UNAUTHORIZED: ResponseRule(401, JSON, WebhookCode.UNAUTHORIZED, "Unauthorized"),
        Outcome.INVALID_EVENT_TYPE: ResponseRule(
            400, JSON, WebhookCode.INVALID_EVENT_TYPE,
            "Webhook event type is not Transaction Payment Created (1796)",
        ),
        Outcome.MISSING_FIELDS: ResponseRule(
            400, JSON, WebhookCode.MISSING_FIELDS,
            "Required fields (OrderCode, TransactionId, StatusId, Amount, MerchantTrns) are missing",
        ),
        Outcome.NOT_SUCCESSFUL: ResponseRule(400, JSON, WebhookCode.TRANSACTION_NOT_SUCCESSFUL),
        Outcome.INVALID_AMOUNT: ResponseRule(400, JSON, WebhookCode.INVALID_AMOUNT, "Amount must be a positive number"),
        # authenticated but unusable payloads still get 200 to stop provider retries
        Outcome.MALFORMED_REFERENCE: ResponseRule(200, JSON, WebhookCode.INVALID_MERCHANT_TRNS, "Invalid merchantTrns format"),
        Outcome.INVALID_EVENT_ID: ResponseRule(200, JSON, WebhookCode.INVALID_EVENT_ID, "eventId is not a valid UUID"),
        Outcome.INTERNAL_ERROR: ResponseRule(
            200, JSON, WebhookCode.ACKNOWLEDGED, "Webhook received but processing failed internally",
        ),
    },
    "viva_key": {
        Outcome.KEY_ISSUED: ResponseRule(200, JSON),
        Outcome.KEY_MISSING: ResponseRule(400, JSON, message="Failed to generate webhook key"),
        Outcome.KEY_ERROR: ResponseRule(500, JSON, message="Internal server error during verification"),
    },
    "mypos": {
        outcome: _PLAIN_OK
        for outcome in (
            Outcome.SUCCESS,
            Outcome.MISSING_SIGNATURE,
            Outcome.INVALID_SIGNATURE,
            Outcome.ROLLBACK,
            Outcome.IGNORED,
            Outcome.UNRESOLVED,
            Outcome.INTERNAL_ERROR,
        )
    },
}


def rule_for(provider: str, outcome: Outcome) -> ResponseRule:
    try:
        return RESPONSE_POLICY[provider][outcome]
    except KeyError:
        raise ValueError(f"No response rule for {provider}/{outcome.value}") from None


def render(provider: str, outcome: Outcome, *, message: str | None = None, data: Any = None) -> WebhookReply:
    """Build the reply a provider expects for an outcome."""
    rule = rule_for(provider, outcome)
    if rule.media_type == PLAIN_TEXT:
        return WebhookReply(status_code=rule.status_code, media_type=PLAIN_TEXT, body="OK")
    if rule.code is None:
        # key endpoint: `{Key}` on success, `{error}` otherwise
        body = {"Key": data} if outcome is Outcome.KEY_ISSUED else {"error": message or rule.message}
        return WebhookReply(status_code=rule.status_code, media_type=JSON, body=body)
    body: dict[str, Any] = {"code": rule.code.value, "message": message or rule.message or ""}
    if data is not None:
        body["data"] = data
    return WebhookReply(status_code=rule.status_code, media_type=JSON, body=body)
