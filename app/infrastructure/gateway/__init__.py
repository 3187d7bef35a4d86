"""WhatsApp gateway client infrastructure."""

from app.infrastructure.gateway.base import (
    ContactProfile,
    DownloadedMedia,
    GatewayClientProtocol,
    GatewayError,
    MessageMedia,
)
from app.infrastructure.gateway.factory import get_gateway_client

__all__ = [
    "ContactProfile",
    "DownloadedMedia",
    "GatewayClientProtocol",
    "GatewayError",
    "MessageMedia",
    "get_gateway_client",
]
