"""
REST API clients for outbound integrations.
"""
from .base import BaseAPIClient, APIError, NotFoundError

__all__ = [
    "BaseAPIClient",
    "APIError",
    "NotFoundError",
]
