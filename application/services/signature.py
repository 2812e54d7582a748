"""
Authentication of inbound provider callbacks.

SignatureVerifier implements the POS gateway's IPC signature: the values of
every posted field except ``Signature``, in posting order, are joined with
``-`` and base64-encoded; the signature is base64(HMAC-SHA256(secret, that)).

AuthorizationGuard checks the shared key the card processor may send in one
of several places. Both fail closed: any error means "not authenticated".
"""
from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Any, Mapping, Optional, Union
from urllib.parse import parse_qsl

from core.logging_config import get_logger


logger = get_logger(__name__)

SIGNATURE_FIELD = "Signature"


class SignatureVerifier:
    provider = "mypos"

    def __init__(self, secret: Optional[str]) -> None:
        self._secret = secret

    @staticmethod
    def canonical(fields: Mapping[str, Any]) -> bytes:
        values = [str(v) for k, v in fields.items() if k != SIGNATURE_FIELD]
        return base64.b64encode("-".join(values).encode("utf-8"))

    def sign(self, fields: Mapping[str, Any]) -> str:
        if not self._secret:
            raise RuntimeError("POS signing key not configured")
        digest = hmac.new(self._secret.encode("utf-8"), self.canonical(fields), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def verify(
        self,
        fields: Optional[Mapping[str, Any]],
        signature: Optional[str],
        raw_body: Union[str, bytes, None] = None,
    ) -> bool:
        """Recompute and compare in constant time; never raises."""
        try:
            if not self._secret:
                logger.error("signature_secret_missing", provider=self.provider)
                return False
            if not signature or not isinstance(signature, str):
                return False
            if not fields:
                if isinstance(raw_body, bytes):
                    raw_body = raw_body.decode("utf-8")
                fields = dict(parse_qsl(raw_body or "", keep_blank_values=True))
            if not fields:
                return False
            expected = self.sign(fields)
            return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8"))
        except Exception as exc:
            logger.warning("signature_verification_error", provider=self.provider, error=str(exc))
            return False


class AuthorizationGuard:
    """
    Shared-key check for card-processor callbacks.

    Credential locations, first match wins: ``Authorization: Bearer <key>``,
    raw ``Authorization``, ``x-api-key``, ``x-viva-signature``, ``?auth=``.
    With ``require_auth`` off, a request carrying none of them is let through
    (provisional policy, logged); a credential that is present must match.
    """

    provider = "viva"
    HEADER_NAMES = ("authorization", "x-api-key", "x-viva-signature")
    QUERY_NAME = "auth"

    def __init__(self, shared_key: Optional[str], *, require_auth: bool = False) -> None:
        self._shared_key = shared_key
        self.require_auth = require_auth

    @classmethod
    def extract_credential(cls, headers: Mapping[str, Any], query: Mapping[str, Any]) -> Optional[str]:
        normalized = {str(k).lower(): v for k, v in (headers or {}).items()}
        for name in cls.HEADER_NAMES:
            value = normalized.get(name)
            if value:
                value = str(value)
                if value.lower().startswith("bearer "):
                    return value[7:].strip()
                return value
        value = (query or {}).get(cls.QUERY_NAME)
        return str(value) if value else None

    def permit(self, headers: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
        try:
            credential = self.extract_credential(headers, query)
            if credential is None:
                if self.require_auth:
                    logger.warning("webhook_auth_missing", provider=self.provider)
                    return False
                logger.warning("webhook_auth_bypassed", provider=self.provider, reason="no credential provided")
                return True
            if not self._shared_key:
                logger.error("webhook_auth_secret_missing", provider=self.provider)
                return False
            return hmac.compare_digest(credential.encode("utf-8"), self._shared_key.encode("utf-8"))
        except Exception as exc:
            logger.error("webhook_auth_error", provider=self.provider, error=str(exc))
            return False
