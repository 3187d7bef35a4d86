"""Gateway client factory."""

import logging

import httpx

from app.infrastructure.gateway.base import GatewayClientProtocol
from app.infrastructure.gateway.evolution_client import EvolutionClient
from app.infrastructure.gateway.waha_client import WahaClient
from app.persistence.models.channel_instance import ChannelInstance

logger = logging.getLogger(__name__)

_CLIENTS: dict[str, type] = {
    "waha": WahaClient,
    "evolution": EvolutionClient,
}


def get_gateway_client(
    instance: ChannelInstance | None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> GatewayClientProtocol | None:
    """Get a gateway client for a channel instance.

    Args:
        instance: Channel instance, or None when the webhook matched no instance
        transport: Optional transport override (used by tests)

    Returns:
        Gateway client, or None if the instance is missing or unusable
    """
    if instance is None:
        return None
    if not instance.base_url:
        logger.warning(f"Channel instance {instance.id} has no base URL")
        return None

    client_class = _CLIENTS.get(instance.provider)
    if client_class is None:
        logger.warning(f"Channel instance {instance.id} has unknown provider {instance.provider!r}")
        return None
    return client_class(instance, transport=transport)
