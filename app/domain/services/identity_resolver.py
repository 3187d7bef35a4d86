"""Resolve who the other side of a WhatsApp event is."""

import logging
from dataclasses import dataclass
from typing import Any

from app.core.phone import CanonicalPhone, canonicalize_phone, same_line, strip_chat_id
from app.core.privacy_id import extract_embedded_phone, is_privacy_id, privacy_id_digits
from app.infrastructure.gateway import GatewayClientProtocol, GatewayError
from app.persistence.models.channel_instance import ChannelInstance
from app.persistence.models.lead import Lead
from app.persistence.repositories.lead_repository import LeadRepository

logger = logging.getLogger(__name__)

# Where inbound payloads carry the sender's self-reported name
_PUSH_NAME_PATHS = (
    ("pushName",),
    ("_data", "pushName"),
    ("_data", "notifyName"),
    ("body", "pushName"),
    ("chat", "contact", "pushname"),
    ("sender", "pushName"),
)


@dataclass
class ResolvedIdentity:
    """The counterpart of an event.

    phone is None when the counterpart is a privacy id nobody could resolve.
    lead is set when a lead was already recorded under the privacy id.
    """

    raw_id: str
    phone: CanonicalPhone | None = None
    privacy_id: str | None = None
    lead: Lead | None = None

    @property
    def is_resolved(self) -> bool:
        return self.phone is not None


def _dig(payload: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(payload, dict):
            return None
        payload = payload.get(key)
    return payload


def counterpart_chat_id(message: dict[str, Any], from_me: bool) -> str:
    """The chat id of the other party: the recipient for outbound, the sender otherwise."""
    primary = message.get("to") if from_me else message.get("from")
    for candidate in (primary, message.get("chatId"), _dig(message, ("key", "remoteJid"))):
        if isinstance(candidate, str) and candidate:
            return candidate
    return ""


def extract_push_name(message: dict[str, Any]) -> str | None:
    """The sender's self-reported display name, if the payload has one."""
    for path in _PUSH_NAME_PATHS:
        value = _dig(message, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class IdentityResolver:
    """Turns chat ids into canonical phones, resolving privacy ids on the way.

    Resolution order for a privacy id:
        1. a real number embedded elsewhere in the payload
        2. a lead already recorded under the privacy id (or re-keyed from it)
        3. the channel instance's gateway lookup
    """

    def __init__(
        self,
        lead_repository: LeadRepository,
        gateway: GatewayClientProtocol | None = None,
        instance: ChannelInstance | None = None,
    ) -> None:
        self.lead_repository = lead_repository
        self.gateway = gateway
        self.own_number = instance.phone_number if instance else None

    async def resolve(self, message: dict[str, Any], from_me: bool) -> ResolvedIdentity:
        raw_id = counterpart_chat_id(message, from_me)
        if not is_privacy_id(raw_id):
            return ResolvedIdentity(raw_id=raw_id, phone=canonicalize_phone(raw_id))

        privacy_id = privacy_id_digits(raw_id)
        known_lead = await self.lead_repository.get_by_privacy_id(privacy_id)

        embedded = extract_embedded_phone(message)
        # Outbound payloads embed our own number as the sender
        if embedded and not same_line(embedded, self.own_number):
            logger.info(
                "Privacy id resolved from payload",
                extra={"event_type": "privacy_id_resolved", "resolution": "payload"},
            )
            return ResolvedIdentity(
                raw_id=raw_id, phone=canonicalize_phone(embedded), privacy_id=privacy_id, lead=known_lead
            )

        if known_lead is not None and not known_lead.is_privacy_id:
            return ResolvedIdentity(
                raw_id=raw_id,
                phone=canonicalize_phone(f"{known_lead.country_code or ''}{known_lead.phone}"),
                privacy_id=privacy_id,
                lead=known_lead,
            )

        resolved = await self._lookup(privacy_id)
        if resolved:
            logger.info(
                "Privacy id resolved by gateway",
                extra={"event_type": "privacy_id_resolved", "resolution": "gateway"},
            )
            return ResolvedIdentity(
                raw_id=raw_id, phone=canonicalize_phone(resolved), privacy_id=privacy_id, lead=known_lead
            )

        logger.info(
            "Privacy id unresolved",
            extra={"event_type": "privacy_id_unresolved", "has_lead": known_lead is not None},
        )
        return ResolvedIdentity(raw_id=raw_id, privacy_id=privacy_id, lead=known_lead)

    async def _lookup(self, privacy_id: str) -> str | None:
        if self.gateway is None:
            return None
        try:
            resolved = await self.gateway.resolve_privacy_id(privacy_id)
        except GatewayError as e:
            logger.warning(f"Privacy id lookup failed: {e}")
            return None
        return strip_chat_id(resolved) or None
