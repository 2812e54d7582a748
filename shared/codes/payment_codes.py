"""
Payment specific codes: numeric business codes plus the string codes that
providers and the commerce platform see in response bodies.
"""
from __future__ import annotations

from enum import Enum, IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003

    # Reconciliation errors (7xxxx)
    MALFORMED_REFERENCE = 70000
    RESOLUTION_FAILED = 70001
    DOWNSTREAM_FAILED = 70002
    CHECKOUT_FAILED = 70003


class WebhookCode(str, Enum):
    """Codes placed in the card-processor webhook JSON replies."""

    SUCCESS = "SUCCESS"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_EVENT_TYPE = "INVALID_EVENT_TYPE"
    MISSING_FIELDS = "MISSING_FIELDS"
    TRANSACTION_NOT_SUCCESSFUL = "TRANSACTION_NOT_SUCCESSFUL"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_MERCHANT_TRNS = "INVALID_MERCHANT_TRNS"
    INVALID_EVENT_ID = "INVALID_EVENT_ID"


class CheckoutCode(str, Enum):
    """Codes returned to the commerce platform by create_transaction."""

    NO_VALID_ITEMS = "NO_VALID_ITEMS"
    NO_VALID_TICKETS = "NO_VALID_TICKETS"
    MULTIPLE_EVENTS = "MULTIPLE_EVENTS"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"


# myPOS IPC notification methods
IPC_PURCHASE_NOTIFY = "IPCPurchaseNotify"
IPC_PURCHASE_ROLLBACK = "IPCPurchaseRollback"
