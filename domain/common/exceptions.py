"""Domain exceptions shared by the domain, application and infrastructure layers.

The core layer only maps these onto HTTP responses; nothing here depends on it.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base business exception"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class WebhookValidationError(BusinessException):
    """Malformed or missing required webhook fields."""

    def __init__(self, message: str, *, field: str | None = None, details: dict | None = None):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class MalformedReferenceError(BusinessException):
    def __init__(self, value: object, *, delimiter: str = ":"):
        super().__init__(
            code=PaymentCode.MALFORMED_REFERENCE,
            message=f"Expected '<orderId>{delimiter}<eventId>'",
            error_type="MALFORMED",
            details={"value": value if isinstance(value, str) else repr(value)},
        )


class AuthenticationFailure(BusinessException):
    def __init__(self, message: str = "Unauthorized", *, provider: str):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message=message,
            error_type="AuthenticationFailure",
            details={"provider": provider},
        )


class ResolutionFailure(BusinessException):
    def __init__(self, order_id: str | None):
        super().__init__(
            code=PaymentCode.RESOLUTION_FAILED,
            message="Could not determine eventId",
            error_type="ResolutionFailure",
            details={"order_id": order_id},
        )


class DownstreamFailure(BusinessException):
    def __init__(self, message: str, *, operation: str, details: Optional[dict] = None):
        full_details = {"operation": operation}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.DOWNSTREAM_FAILED,
            message=message,
            error_type="DownstreamFailure",
            details=full_details,
        )


class CheckoutCreationFailure(BusinessException):
    """Raised to the commerce platform when a checkout session cannot be created."""

    def __init__(self, message: str, *, provider: str, hint: str | None = None):
        details = {"provider": provider}
        if hint:
            details["hint"] = hint
        super().__init__(
            code=PaymentCode.CHECKOUT_FAILED,
            message=message,
            error_type="CheckoutCreationFailure",
            details=details,
        )
