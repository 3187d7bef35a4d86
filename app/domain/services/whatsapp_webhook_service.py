"""WhatsApp webhook pipeline.

Message path:
    filter -> extract content -> duplicate pre-check -> resolve identity ->
    match lead -> reconcile conversation -> store media -> persist message

Ack path:
    filter -> locate message -> advance status, or synthesize an outbound
    message when the ack reports one sent from the phone that we never saw
"""

import logging
from datetime import datetime
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.phone import same_line
from app.domain.services.content_extractor import (
    ExtractedContent,
    canonical_message_id,
    extract_ack_content,
    extract_content,
    extract_inline_media,
)
from app.domain.services.conversation_service import ConversationService
from app.domain.services.event_filter import ignore_reason
from app.domain.services.identity_resolver import (
    IdentityResolver,
    ResolvedIdentity,
    counterpart_chat_id,
    extract_push_name,
)
from app.domain.services.lead_service import LeadService
from app.domain.services.media_service import MediaService
from app.domain.services.message_service import (
    AckStatus,
    MessageService,
    message_timestamp,
    parse_ack_status,
    raw_message_id,
)
from app.infrastructure.gateway import GatewayClientProtocol, get_gateway_client
from app.infrastructure.media_storage import MediaStorage, media_storage
from app.persistence.models.channel_instance import ChannelInstance
from app.persistence.models.conversation import Message
from app.persistence.repositories.channel_instance_repository import ChannelInstanceRepository
from app.persistence.repositories.lead_repository import LeadRepository

logger = logging.getLogger(__name__)


def ignored_response(reason: str) -> dict[str, Any]:
    return {"success": True, "ignored": True, "reason": reason}


def duplicate_response(message_id: int) -> dict[str, Any]:
    return {"success": True, "duplicate": True, "existing_message_id": message_id}


def ack_response(ack: AckStatus, message_id: int | None = None, synthesized: bool = False) -> dict[str, Any]:
    response: dict[str, Any] = {
        "success": True,
        "event": "ack",
        "status": ack.status,
        "external_id": ack.raw_id,
        "message_id": message_id,
    }
    if synthesized:
        response["synthesized"] = True
    return response


class WhatsAppWebhookService:
    """Turns one gateway webhook into lead, conversation and message rows."""

    def __init__(
        self,
        session: AsyncSession,
        storage: MediaStorage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize webhook service.

        Args:
            session: Database session
            storage: Media storage (defaults to the GCS-backed global)
            transport: Optional httpx transport for gateway calls (used by tests)
        """
        self.session = session
        self.storage = storage or media_storage
        self.transport = transport
        self.instance_repo = ChannelInstanceRepository(session)
        self.lead_repo = LeadRepository(session)
        self.lead_service = LeadService(session)
        self.conversation_service = ConversationService(session)
        self.message_service = MessageService(session)

    async def resolve_instance(self, provider: str, session_name: str | None) -> ChannelInstance | None:
        """Find the channel instance a webhook belongs to."""
        instance = await self.instance_repo.get_for_session(provider, session_name)
        if instance is None:
            logger.warning(
                "No active channel instance for webhook",
                extra={"provider": provider, "session_name": session_name},
            )
        elif (instance.session_name or "").lower() != (session_name or "").strip().lower():
            logger.info(
                "Webhook session matched by fallback",
                extra={"provider": provider, "session_name": session_name, "channel_instance_id": instance.id},
            )
        return instance

    async def handle_event(
        self,
        provider: str,
        kind: str | None,
        message: dict[str, Any],
        instance: ChannelInstance | None,
    ) -> dict[str, Any]:
        """Dispatch a normalized event to the message or ack path.

        Args:
            provider: Gateway dialect ("waha" or "evolution")
            kind: "message", "ack", or None for events this service does not handle
            message: Message or ack payload in the WAHA shape
            instance: Owning channel instance, if one could be resolved

        Returns:
            Response body
        """
        if kind is None:
            return ignored_response("event_not_handled")

        gateway = get_gateway_client(instance, transport=self.transport)
        if kind == "ack":
            return await self.handle_ack(provider, message, instance, gateway)
        return await self.handle_message(provider, message, instance, gateway)

    async def handle_message(
        self,
        provider: str,
        message: dict[str, Any],
        instance: ChannelInstance | None,
        gateway: GatewayClientProtocol | None,
    ) -> dict[str, Any]:
        reason = ignore_reason(message)
        if reason:
            return ignored_response(reason)

        raw_id = raw_message_id(message)
        short_id = canonical_message_id(raw_id)
        if not short_id:
            return ignored_response("missing_message_id")

        from_me = message.get("fromMe") is True
        extracted = extract_content(message)
        if extracted.is_system_message:
            return ignored_response("empty_message")

        existing = await self.message_service.find_existing(short_id, raw_id)
        if existing is not None:
            return await self._handle_duplicate(existing, message, extracted, instance, gateway, raw_id)

        resolver = IdentityResolver(self.lead_repo, gateway, instance)
        identity = await resolver.resolve(message, from_me)
        reason = self._identity_ignore_reason(identity, instance, from_me)
        if reason:
            return ignored_response(reason)

        tenant_id = instance.tenant_id if instance else None
        channel_instance_id = instance.id if instance else None
        push_name = None if from_me else extract_push_name(message)
        sent_at = message_timestamp(message)

        lead, _ = await self.lead_service.find_or_create(identity, push_name, tenant_id)
        lead = await self.lead_service.record_interaction(lead, sent_at, push_name)
        lead = await self.lead_service.enrich(lead, gateway, identity.phone, lookup_name=from_me)

        conversation = await self.conversation_service.get_or_create(
            lead, channel_instance_id, inbound=not from_me, tenant_id=tenant_id
        )

        media_url = None
        if extracted.has_media:
            media_url = await self._store_media(lead.id, message, extracted, instance, gateway, raw_id)

        quoted = extracted.quoted_message
        reply_to = canonical_message_id(quoted["id"]) if quoted else ""
        values = {
            "conversation_id": conversation.id,
            "lead_id": lead.id,
            "direction": "outbound" if from_me else "inbound",
            "type": extracted.type,
            "status": "sent" if from_me else "delivered",
            "content": extracted.content,
            "media_url": media_url,
            "provider_message_id": short_id,
            "external_id": raw_id,
            "provider": provider,
            "sender_type": "agent" if from_me else "lead",
            "source": "mobile" if from_me else "lead",
            "quoted_message": quoted,
            "reply_to_external_id": reply_to or None,
            "created_at": sent_at,
            "updated_at": datetime.utcnow(),
        }
        stored, created = await self.message_service.persist(values)
        if not created:
            # A concurrent delivery inserted it between the pre-check and here
            return await self._handle_duplicate(
                stored, message, extracted, instance, gateway, raw_id, media_url=media_url
            )

        await self.conversation_service.record_message(conversation, sent_at, inbound=not from_me)
        return {
            "success": True,
            "data": {
                "message_id": stored.id,
                "conversation_id": conversation.id,
                "lead_id": lead.id,
                "provider": provider,
                "external_id": short_id,
            },
        }

    async def handle_ack(
        self,
        provider: str,
        payload: dict[str, Any],
        instance: ChannelInstance | None,
        gateway: GatewayClientProtocol | None,
    ) -> dict[str, Any]:
        reason = ignore_reason(payload, is_ack=True)
        if reason:
            return ignored_response(reason)

        ack = parse_ack_status(payload)
        if not ack.status or not ack.short_id:
            return ack_response(ack)

        existing = await self.message_service.find_for_ack(ack)
        if existing is not None:
            await self.message_service.advance_status(existing, ack.status)
            return ack_response(ack, existing.id)

        if payload.get("fromMe") is not True:
            logger.info(
                "Ack for unknown message",
                extra={"event_type": "ack_unmatched", "external_id": ack.short_id, "provider": provider},
            )
            return ack_response(ack)

        return await self._synthesize_from_ack(provider, payload, ack, instance, gateway)

    async def _synthesize_from_ack(
        self,
        provider: str,
        payload: dict[str, Any],
        ack: AckStatus,
        instance: ChannelInstance | None,
        gateway: GatewayClientProtocol | None,
    ) -> dict[str, Any]:
        """Store an outbound message sent from the phone, known only from its ack."""
        resolver = IdentityResolver(self.lead_repo, gateway, instance)
        identity = await resolver.resolve(payload, from_me=True)
        if not identity.is_resolved and identity.lead is None:
            return ignored_response("ack_for_unresolved_privacy_id")
        reason = self._identity_ignore_reason(identity, instance, from_me=True)
        if reason:
            return ignored_response(reason)

        tenant_id = instance.tenant_id if instance else None
        sent_at = message_timestamp(payload)
        lead, _ = await self.lead_service.find_or_create(identity, None, tenant_id)
        conversation = await self.conversation_service.get_or_create(
            lead, instance.id if instance else None, inbound=False, tenant_id=tenant_id
        )

        extracted = extract_ack_content(payload)
        values = {
            "conversation_id": conversation.id,
            "lead_id": lead.id,
            "direction": "outbound",
            "type": extracted.type,
            "status": ack.status,
            "content": extracted.content,
            "media_url": None,
            "provider_message_id": ack.short_id,
            "external_id": ack.raw_id,
            "provider": provider,
            "sender_type": "agent",
            "source": "mobile",
            "created_at": sent_at,
            "updated_at": datetime.utcnow(),
        }
        stored, created = await self.message_service.persist(values)
        if not created:
            await self.message_service.advance_status(stored, ack.status)
            return ack_response(ack, stored.id)

        await self.conversation_service.record_message(conversation, sent_at, inbound=False)
        await self.lead_service.record_interaction(lead, sent_at)
        logger.info(
            "Outbound message synthesized from ack",
            extra={"event_type": "ack_synthesized", "message_id": stored.id, "lead_id": lead.id},
        )
        return ack_response(ack, stored.id, synthesized=True)

    async def _handle_duplicate(
        self,
        existing: Message,
        message: dict[str, Any],
        extracted: ExtractedContent,
        instance: ChannelInstance | None,
        gateway: GatewayClientProtocol | None,
        raw_id: str,
        media_url: str | None = None,
    ) -> dict[str, Any]:
        """Acknowledge a repeated delivery, patching media the first copy lacked.

        Whichever delivery arrives first, a media message ends up with media
        once any delivery carried it.
        """
        if existing.is_media and existing.media_url is None and extracted.has_media:
            if media_url is None:
                media_url = await self._store_media(
                    existing.lead_id, message, extracted, instance, gateway, raw_id
                )
            if media_url:
                await self.message_service.attach_media(existing, media_url)

        logger.info(
            "Duplicate message delivery",
            extra={"event_type": "message_duplicate", "message_id": existing.id, "external_id": existing.provider_message_id},
        )
        return duplicate_response(existing.id)

    async def _store_media(
        self,
        lead_id: int,
        message: dict[str, Any],
        extracted: ExtractedContent,
        instance: ChannelInstance | None,
        gateway: GatewayClientProtocol | None,
        raw_id: str,
    ) -> str | None:
        media_service = MediaService(self.storage, gateway, instance, transport=self.transport)
        from_me = message.get("fromMe") is True
        return await media_service.store_message_media(
            lead_id,
            extracted.type,
            media_url=extracted.media_url,
            inline_data=extract_inline_media(message),
            mimetype=extracted.mimetype,
            chat_id=message.get("chatId") or counterpart_chat_id(message, from_me),
            external_id=raw_id,
        )

    @staticmethod
    def _identity_ignore_reason(
        identity: ResolvedIdentity, instance: ChannelInstance | None, from_me: bool
    ) -> str | None:
        if identity.phone is not None:
            if not identity.phone.local_number:
                return "missing_counterpart"
            if instance is not None and same_line(identity.phone.full_number, instance.phone_number):
                return "self_message"
            return None
        if from_me and identity.lead is None:
            logger.warning(
                "Outbound event addressed to an unresolved privacy id",
                extra={"event_type": "privacy_id_outbound_dropped"},
            )
            return "outbound_to_unresolved_privacy_id"
        return None
