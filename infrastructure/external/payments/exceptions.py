"""
Provider client failures, expressed as BusinessException so the global
handler can map them like any other business error.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentClientError(BusinessException):
    code_value: int = PaymentCode.PROVIDER_ERROR

    def __init__(self, message: str, *, provider: str, status_code: Optional[int] = None) -> None:
        details = {"provider": provider}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(
            code=self.code_value,
            message=message,
            error_type=type(self).__name__,
            details=details,
        )


class PaymentProviderError(PaymentClientError):
    """Misconfiguration or a definite refusal from the provider."""


class PaymentRecoverableError(PaymentClientError):
    """Provider unreachable after retries; safe to try again later."""

    code_value = PaymentCode.PROVIDER_RECOVERABLE


class PaymentSignatureError(PaymentClientError):
    """Outgoing request could not be signed."""

    code_value = PaymentCode.SIGNATURE_ERROR
