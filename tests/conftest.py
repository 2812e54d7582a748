"""Pytest bootstrap configuration.

Environment defaults are set before any module that reads settings is
imported; in-memory fakes stand in for every commerce port.
"""
import os

os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from typing import Any, Optional
from urllib.parse import urlencode

import pytest

from application.services.audit import AuditTrail
from application.services.event_resolver import EventResolver
from application.services.signature import SignatureVerifier


EVENT_ID = "3f2b6c1e-9a4d-4c8b-8e2f-1a2b3c4d5e6f"
OTHER_EVENT_ID = "7d1e2f3a-4b5c-4d6e-9f70-8a9b0c1d2e3f"
SIGNING_KEY = "test-signing-key"
VIVA_SECRET = "viva-shared-secret"


class FakeCommerce:
    """OrderGateway + RecordStore + SecretStore + AuditSink held in memory."""

    def __init__(self) -> None:
        self.confirmed: list[tuple[str, dict]] = []
        self.order_requests: list[tuple[dict, dict]] = []
        self.order_tickets: list[dict] = [{"pdfUrl": "https://tickets.example.com/t.pdf"}]
        self.collections: dict[str, list[dict]] = {}
        self.records: dict[str, dict[str, dict]] = {}
        self.secrets: dict[str, str] = {}
        self.inserted: list[tuple[str, dict]] = []
        self.calls: list[str] = []
        self.failing: set[str] = set()

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failing:
            raise RuntimeError(f"{operation} unavailable")

    async def confirm_order(self, event_id: str, options: dict) -> Any:
        self._enter("confirm_order")
        self.confirmed.append((event_id, options))
        return {"status": "confirmed"}

    async def get_order(self, identifiers: dict, options: dict) -> list[dict]:
        self._enter("get_order")
        self.order_requests.append((identifiers, options))
        return list(self.order_tickets)

    async def query(
        self,
        collection: str,
        *,
        eq: Optional[dict] = None,
        contains: Optional[dict] = None,
        has_some: Optional[dict] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        self._enter(f"query:{collection}")
        items = list(self.collections.get(collection, []))
        for field, value in (eq or {}).items():
            items = [i for i in items if i.get(field) == value]
        for field, value in (contains or {}).items():
            items = [i for i in items if value in str(i.get(field, ""))]
        for field, values in (has_some or {}).items():
            items = [i for i in items if i.get(field) in values]
        return items[:limit] if limit else items

    async def get(self, collection: str, record_id: str) -> dict:
        self._enter(f"get:{collection}")
        try:
            return self.records[collection][record_id]
        except KeyError:
            raise LookupError(f"{collection}/{record_id} not found") from None

    async def get_secret(self, name: str) -> str:
        self._enter("get_secret")
        return self.secrets.get(name, "")

    async def insert(self, collection: str, document: dict) -> Any:
        self._enter("insert")
        self.inserted.append((collection, document))
        return document

    def phases(self) -> list[str]:
        return [doc["phase"] for _, doc in self.inserted]

    def lookups(self) -> list[str]:
        return [c for c in self.calls if c.startswith(("query:", "get:"))]


@pytest.fixture
def commerce() -> FakeCommerce:
    return FakeCommerce()


@pytest.fixture
def audit(commerce) -> AuditTrail:
    return AuditTrail(commerce, collection="logs", timeout=1.0)


@pytest.fixture
def resolver(commerce, audit) -> EventResolver:
    return EventResolver(commerce, audit, timeout=1.0)


@pytest.fixture
def verifier() -> SignatureVerifier:
    return SignatureVerifier(SIGNING_KEY)


@pytest.fixture
def signed_form(verifier):
    """Build a signed, form-encoded POS callback body from ordered fields."""

    def _build(**fields: str) -> tuple[dict, bytes]:
        signed = dict(fields)
        signed["Signature"] = verifier.sign(fields)
        return signed, urlencode(signed).encode("utf-8")

    return _build
