"""Repository implementations."""

from app.persistence.repositories.base import BaseRepository
from app.persistence.repositories.channel_instance_repository import ChannelInstanceRepository
from app.persistence.repositories.conversation_repository import ConversationRepository
from app.persistence.repositories.lead_repository import LeadRepository
from app.persistence.repositories.message_repository import MessageRepository

__all__ = [
    "BaseRepository",
    "ChannelInstanceRepository",
    "ConversationRepository",
    "LeadRepository",
    "MessageRepository",
]
