"""Remote notification API."""

from .client import GatewayError, NotificationGateway, NotSignedInError

__all__ = ["NotificationGateway", "GatewayError", "NotSignedInError"]
