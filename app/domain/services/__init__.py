"""Domain services."""

from app.domain.services.conversation_service import ConversationService
from app.domain.services.identity_resolver import IdentityResolver
from app.domain.services.lead_service import LeadService
from app.domain.services.media_service import MediaService
from app.domain.services.message_service import MessageService
from app.domain.services.whatsapp_webhook_service import WhatsAppWebhookService

__all__ = [
    "ConversationService",
    "IdentityResolver",
    "LeadService",
    "MediaService",
    "MessageService",
    "WhatsAppWebhookService",
]
