"""Database models."""

from app.persistence.models.channel_instance import ChannelInstance
from app.persistence.models.conversation import Conversation, Message
from app.persistence.models.lead import Lead

__all__ = [
    "ChannelInstance",
    "Conversation",
    "Message",
    "Lead",
]
