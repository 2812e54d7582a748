"""
Identifier codec: compound order references, event UUIDs and amounts.

Providers carry our identifiers through free-text fields, so everything read
back from them is parsed here before it reaches the commerce platform.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from domain.common.exceptions import MalformedReferenceError


UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_MINOR_UNITS = re.compile(r"^\d+$")
_DECIMAL_AMOUNT = re.compile(r"^\d+\.\d{1,2}$")
_TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class CompoundOrderReference:
    """`orderId:eventId` pair carried in provider-facing reference fields."""

    order_id: str
    event_id: str

    def encode(self, delimiter: str = ":") -> str:
        return f"{self.order_id}{delimiter}{self.event_id}"


def split_compound(value: Any, delimiter: str = ":") -> CompoundOrderReference:
    """Split a compound reference; raise MalformedReferenceError when either side is empty."""
    if not isinstance(value, str) or delimiter not in value:
        raise MalformedReferenceError(value, delimiter=delimiter)
    parts = value.split(delimiter)
    order_id, event_id = parts[0].strip(), parts[1].strip()
    if not order_id or not event_id:
        raise MalformedReferenceError(value, delimiter=delimiter)
    return CompoundOrderReference(order_id=order_id, event_id=event_id)


def is_valid_uuid(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return UUID_PATTERN.match(value) is not None


def normalize_amount(raw: Any) -> Optional[str]:
    """
    Normalize an amount to a decimal string with two fraction digits.

    All-digit input is read as minor currency units ("2345" -> "23.45");
    input with one or two fraction digits is taken as already decimal
    ("23.4" -> "23.40"). Anything else yields None.
    """
    if raw is None or isinstance(raw, bool):
        return None
    text = str(raw).strip()
    if not text:
        return None
    if _MINOR_UNITS.match(text):
        value = Decimal(text) / 100
    elif _DECIMAL_AMOUNT.match(text):
        value = Decimal(text)
    else:
        return None
    return str(value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def ensure_https(url: Optional[str]) -> str:
    if not url:
        return ""
    if url.startswith("https://"):
        return url
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return f"https://{url}"


__all__ = [
    "CompoundOrderReference",
    "UUID_PATTERN",
    "split_compound",
    "is_valid_uuid",
    "normalize_amount",
    "ensure_https",
]
