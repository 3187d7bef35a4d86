"""WhatsApp gateway webhook endpoints (WAHA and Evolution API)."""

import json
import logging
from collections.abc import Mapping
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas.whatsapp import EnvelopeError, WebhookResponse, parse_envelope
from app.core.signature import extract_signature, verify_signature
from app.core.tenant_context import tenant_scope
from app.domain.services.whatsapp_webhook_service import WhatsAppWebhookService
from app.persistence.database import get_db
from app.persistence.models.channel_instance import ChannelInstance
from app.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter()


def get_webhook_service(db: Annotated[AsyncSession, Depends(get_db)]) -> WhatsAppWebhookService:
    """Dependency for the webhook pipeline."""
    return WhatsAppWebhookService(db)


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _signature_accepted(
    instance: ChannelInstance | None, raw_body: bytes, headers: Mapping[str, str]
) -> bool:
    """Check the body's HMAC against the instance secret (or the shared one).

    Without any secret there is nothing to check. A failed check rejects the
    request only in strict mode; otherwise it is logged and processing goes on.
    """
    secret = (instance.webhook_secret if instance else None) or settings.webhook_shared_secret
    if not secret:
        return True
    if verify_signature(secret, raw_body, headers):
        return True

    logger.warning(
        "Webhook signature missing or invalid",
        extra={
            "event_type": "webhook_signature_invalid",
            "has_signature": extract_signature(headers) is not None,
            "strict": settings.webhook_signature_strict,
            "channel_instance_id": instance.id if instance else None,
        },
    )
    return not settings.webhook_signature_strict


async def _process(
    request: Request,
    service: WhatsAppWebhookService,
    dialect: str | None = None,
) -> JSONResponse:
    # The signature covers the exact bytes sent, so read them before parsing
    raw_body = await request.body()
    try:
        body = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Webhook body is not valid JSON", extra={"body_length": len(raw_body)})
        return _error(status.HTTP_400_BAD_REQUEST, "invalid_json")

    try:
        event = parse_envelope(body, dialect)
    except EnvelopeError as e:
        logger.warning(f"Unrecognized webhook envelope: {e}")
        return _error(status.HTTP_400_BAD_REQUEST, "unrecognized_envelope")

    logger.info(
        "WhatsApp webhook received",
        extra={"provider": event.provider, "event": event.event, "session_name": event.session_name},
    )

    try:
        instance = await service.resolve_instance(event.provider, event.session_name)
        if not _signature_accepted(instance, raw_body, request.headers):
            return _error(status.HTTP_401_UNAUTHORIZED, "invalid_signature")

        results = []
        with tenant_scope(instance.tenant_id if instance else None):
            for message in event.messages or [event.message]:
                results.append(await service.handle_event(event.provider, event.kind, message, instance))
    except Exception:
        logger.error(
            "Unhandled error processing WhatsApp webhook",
            exc_info=True,
            extra={"provider": event.provider, "event": event.event},
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error")

    bodies = [WebhookResponse.model_validate(result).model_dump(exclude_none=True) for result in results]
    if len(bodies) == 1:
        return JSONResponse(content=bodies[0])
    return JSONResponse(content={"success": True, "batch": bodies})


@router.post("/webhook")
async def whatsapp_webhook(
    request: Request,
    service: Annotated[WhatsAppWebhookService, Depends(get_webhook_service)],
) -> JSONResponse:
    """Handle a webhook from any WhatsApp gateway.

    The dialect is detected from the envelope:
    - WAHA: event + session + payload
    - Evolution API: event + instance + data

    Always answers 200 for an understood event, with one of:
    - {"success": true, "ignored": true, "reason": ...}
    - {"success": true, "duplicate": true, "existing_message_id": ...}
    - {"success": true, "data": {message_id, conversation_id, lead_id, provider, external_id}}

    A batched Evolution delivery is processed record by record and answered
    with {"success": true, "batch": [...]}, one body per record.

    Args:
        request: FastAPI request (raw body is needed for the signature)
        service: Webhook pipeline

    Returns:
        JSON response
    """
    return await _process(request, service)


@router.post("/webhook/waha")
async def waha_webhook(
    request: Request,
    service: Annotated[WhatsAppWebhookService, Depends(get_webhook_service)],
) -> JSONResponse:
    """Handle a webhook from a gateway configured as WAHA."""
    return await _process(request, service, dialect="waha")


@router.post("/webhook/evolution")
async def evolution_webhook(
    request: Request,
    service: Annotated[WhatsAppWebhookService, Depends(get_webhook_service)],
) -> JSONResponse:
    """Handle a webhook from a gateway configured as Evolution API."""
    return await _process(request, service, dialect="evolution")
