"""API schemas package."""

from app.api.schemas.whatsapp import (
    EnvelopeError,
    EvolutionEnvelope,
    WahaEnvelope,
    WebhookEvent,
    WebhookMessageData,
    WebhookResponse,
    parse_envelope,
)

__all__ = [
    "EnvelopeError",
    "EvolutionEnvelope",
    "WahaEnvelope",
    "WebhookEvent",
    "WebhookMessageData",
    "WebhookResponse",
    "parse_envelope",
]
