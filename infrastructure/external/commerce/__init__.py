from .client import CommercePlatformClient

__all__ = ["CommercePlatformClient"]
