"""Lead matching and lifecycle for WhatsApp contacts."""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.phone import (
    CanonicalPhone,
    format_phone_for_display,
    phone_variants,
    trailing_match_length,
)
from app.domain.services.identity_resolver import ResolvedIdentity
from app.infrastructure.gateway import GatewayClientProtocol, GatewayError
from app.persistence.models.lead import PLACEHOLDER_NAME_PREFIX, Lead, is_placeholder_name
from app.persistence.repositories.lead_repository import LeadRepository

logger = logging.getLogger(__name__)

MIN_AVATAR_PHONE_DIGITS = 10
MIN_NAME_MATCH_LENGTH = 2
NAME_MATCH_SUFFIX_DIGITS = 6


def _names_overlap(reported: str, stored: str | None) -> bool:
    """Case-insensitive containment in either direction."""
    if not stored:
        return False
    a, b = reported.strip().lower(), stored.strip().lower()
    if len(a) < MIN_NAME_MATCH_LENGTH or len(b) < MIN_NAME_MATCH_LENGTH:
        return False
    return a in b or b in a


def placeholder_name(phone: CanonicalPhone) -> str:
    return f"{PLACEHOLDER_NAME_PREFIX}{format_phone_for_display(phone)}"


def privacy_placeholder_name(privacy_id: str) -> str:
    return f"{PLACEHOLDER_NAME_PREFIX}Facebook {privacy_id[-6:]}"


class LeadService:
    """Service for finding, creating and enriching leads from gateway events."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize lead service."""
        self.session = session
        self.lead_repo = LeadRepository(session)

    async def match(self, phone: CanonicalPhone, display_name: str | None = None) -> Lead | None:
        """Find the lead for a canonical phone, tolerating legacy formats.

        Lookup order:
            1. exact match on any stored variant of the number
            2. last 8 digits
            3. last 7 digits, preferring the longest shared trailing run
            4. last 6 digits together with a matching display name

        Args:
            phone: Canonical phone of the counterpart
            display_name: Name the contact reported, enables step 4

        Returns:
            Lead or None if nothing matched
        """
        digits = phone.full_number
        lead = await self.lead_repo.get_by_any_phone(phone_variants(digits))
        if lead is not None:
            return lead

        if len(phone.local_number) >= 8:
            candidates = await self.lead_repo.find_by_phone_suffix(digits[-8:], limit=1)
            if candidates:
                logger.info("Lead matched by 8-digit suffix", extra={"lead_id": candidates[0].id})
                return candidates[0]

        if len(phone.local_number) >= 7:
            candidates = await self.lead_repo.find_by_phone_suffix(digits[-7:], limit=5)
            if candidates:
                # max keeps the first (oldest) lead on ties
                best = max(candidates, key=lambda c: trailing_match_length(c.phone, digits))
                logger.info("Lead matched by 7-digit suffix", extra={"lead_id": best.id})
                return best

        if display_name and len(digits) >= NAME_MATCH_SUFFIX_DIGITS:
            candidates = await self.lead_repo.find_by_phone_suffix(digits[-NAME_MATCH_SUFFIX_DIGITS:], limit=10)
            for candidate in candidates:
                if _names_overlap(display_name, candidate.name) or _names_overlap(
                    display_name, candidate.whatsapp_name
                ):
                    logger.info("Lead matched by suffix and name", extra={"lead_id": candidate.id})
                    return candidate

        return None

    async def find_or_create(
        self,
        identity: ResolvedIdentity,
        push_name: str | None = None,
        tenant_id: int | None = None,
    ) -> tuple[Lead, bool]:
        """Find the counterpart's lead, creating it on first contact.

        Unresolved privacy ids get a temporary lead keyed by the opaque id.
        A privacy lead is re-keyed to the real phone once the id resolves.

        Returns:
            (lead, created)
        """
        if not identity.is_resolved:
            if identity.lead is not None:
                return identity.lead, False
            return await self._create_privacy_lead(identity.privacy_id, push_name, tenant_id)

        phone = identity.phone
        lead = await self.match(phone, push_name)

        if lead is None and identity.lead is not None and identity.lead.is_privacy_id:
            upgraded = await self._upgrade_privacy_lead(identity.lead, phone)
            if upgraded is not None:
                return upgraded, False
            lead = await self.match(phone, push_name)

        if lead is not None:
            if identity.privacy_id and not lead.privacy_id:
                await self.lead_repo.update(lead, privacy_id=identity.privacy_id)
            return lead, False

        name = push_name if push_name and not is_placeholder_name(push_name) else placeholder_name(phone)
        values = {
            "tenant_id": tenant_id,
            "phone": phone.local_number,
            "country_code": phone.country_code,
            "name": name,
            "whatsapp_name": push_name,
            "source": "whatsapp",
            "is_privacy_id": False,
            "privacy_id": identity.privacy_id,
        }
        lead, created = await self.lead_repo.create_or_get(values, lambda: self.match(phone, push_name))
        if created:
            logger.info(
                "Lead created",
                extra={"event_type": "lead_created", "lead_id": lead.id, "country_code": phone.country_code},
            )
        return lead, created

    async def _create_privacy_lead(
        self, privacy_id: str, push_name: str | None, tenant_id: int | None
    ) -> tuple[Lead, bool]:
        name = push_name if push_name and not is_placeholder_name(push_name) else privacy_placeholder_name(privacy_id)
        values = {
            "tenant_id": tenant_id,
            "phone": privacy_id,
            "country_code": None,
            "name": name,
            "whatsapp_name": push_name,
            "source": "whatsapp",
            "is_privacy_id": True,
            "privacy_id": privacy_id,
        }
        lead, created = await self.lead_repo.create_or_get(
            values, lambda: self.lead_repo.get_by_privacy_id(privacy_id)
        )
        if created:
            logger.info(
                "Lead created for unresolved privacy id",
                extra={"event_type": "lead_created", "lead_id": lead.id, "is_privacy_id": True},
            )
        return lead, created

    async def _upgrade_privacy_lead(self, lead: Lead, phone: CanonicalPhone) -> Lead | None:
        """Re-key a privacy-id lead to its real phone.

        Returns:
            The upgraded lead, or None if another lead took the phone first
        """
        lead_id = lead.id
        try:
            async with self.session.begin_nested():
                lead.phone = phone.local_number
                lead.country_code = phone.country_code
                lead.is_privacy_id = False
                if is_placeholder_name(lead.name):
                    lead.name = placeholder_name(phone)
                await self.session.flush()
        except IntegrityError:
            logger.info("Privacy lead upgrade lost a race", extra={"lead_id": lead_id})
            return None
        await self.session.commit()
        logger.info("Privacy lead re-keyed to real phone", extra={"event_type": "lead_upgraded", "lead_id": lead.id})
        return lead

    async def record_interaction(self, lead: Lead, at: datetime, push_name: str | None = None) -> Lead:
        """Refresh the interaction time and promote a placeholder name to a reported one."""
        changes: dict = {"last_interaction_at": at}
        if push_name:
            changes["whatsapp_name"] = push_name
            if is_placeholder_name(lead.name) and not is_placeholder_name(push_name):
                changes["name"] = push_name
                logger.info("Lead name promoted", extra={"lead_id": lead.id})
        return await self.lead_repo.update(lead, **changes)

    async def enrich(
        self,
        lead: Lead,
        gateway: GatewayClientProtocol | None,
        phone: CanonicalPhone | None,
        lookup_name: bool = False,
    ) -> Lead:
        """Fill in name and avatar from the gateway. Failures leave the lead as is.

        Args:
            lead: Lead to enrich
            gateway: Client for the owning channel instance
            phone: Counterpart phone (None for unresolved privacy ids)
            lookup_name: Ask the contact API for a name (outbound events carry none)
        """
        if gateway is None or phone is None:
            return lead
        if not phone.is_valid:
            # The gateway has no contact or picture for a malformed number
            logger.info(
                "Skipping enrichment for invalid domestic number",
                extra={"lead_id": lead.id, "country_code": phone.country_code},
            )
            return lead

        changes: dict = {}
        if lookup_name and is_placeholder_name(lead.name):
            try:
                profile = await gateway.get_contact(phone.full_number)
            except GatewayError as e:
                logger.warning(f"Contact lookup failed for lead {lead.id}: {e}")
                profile = None
            if profile and profile.display_name and not is_placeholder_name(profile.display_name):
                changes["name"] = profile.display_name

        if not lead.avatar_url and len(phone.full_number) >= MIN_AVATAR_PHONE_DIGITS:
            try:
                avatar_url = await gateway.get_profile_picture_url(phone.full_number)
            except GatewayError as e:
                logger.warning(f"Profile picture lookup failed for lead {lead.id}: {e}")
                avatar_url = None
            if avatar_url:
                changes["avatar_url"] = avatar_url

        if changes:
            lead = await self.lead_repo.update(lead, **changes)
        return lead
