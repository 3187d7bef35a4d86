"""Conversation and Message models."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from app.persistence.database import Base

if TYPE_CHECKING:
    from app.persistence.models.channel_instance import ChannelInstance
    from app.persistence.models.lead import Lead

CONVERSATION_STATUSES = ("open", "pending", "resolved")
ACTIVE_CONVERSATION_STATUSES = ("open", "pending")

MESSAGE_DIRECTIONS = ("inbound", "outbound")
MESSAGE_TYPES = ("text", "image", "audio", "video", "document")
MEDIA_MESSAGE_TYPES = ("image", "audio", "video", "document")

# Delivery status only ever moves forward
MESSAGE_STATUS_RANK = {"sent": 1, "delivered": 2, "read": 3}

_ACTIVE_STATUS_CLAUSE = text("status IN ('open', 'pending')")


class Conversation(Base):
    """Conversation between a lead and one channel instance."""

    __tablename__ = "conversations"
    __table_args__ = (
        # At most one open/pending conversation per (lead, channel instance)
        Index(
            "uq_conversations_active_lead_instance",
            "lead_id",
            "channel_instance_id",
            unique=True,
            postgresql_where=_ACTIVE_STATUS_CLAUSE,
            sqlite_where=_ACTIVE_STATUS_CLAUSE,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False, index=True)
    channel_instance_id = Column(Integer, ForeignKey("channel_instances.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="open")  # open, pending, resolved
    unread_count = Column(Integer, nullable=False, default=0)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    lead = relationship("Lead", back_populates="conversations")
    channel_instance = relationship("ChannelInstance")
    messages = relationship(
        "Message", back_populates="conversation", cascade="all, delete-orphan", order_by="Message.created_at"
    )

    def __repr__(self) -> str:
        return (
            f"<Conversation(id={self.id}, lead_id={self.lead_id}, "
            f"channel_instance_id={self.channel_instance_id}, status={self.status})>"
        )


class Message(Base):
    """A single WhatsApp message, stored once per canonical provider id."""

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False, index=True)
    direction = Column(String(10), nullable=False)  # inbound, outbound
    type = Column(String(20), nullable=False, default="text")  # text, image, audio, video, document
    status = Column(String(20), nullable=False, default="sent")  # sent, delivered, read
    content = Column(Text, nullable=False, default="")
    media_url = Column(String(1024), nullable=True)  # storage:// locator, never a public URL
    provider_message_id = Column(String(255), nullable=False, unique=True, index=True)  # canonical short id
    external_id = Column(String(255), nullable=True, index=True)  # id as the provider sent it
    provider = Column(String(20), nullable=True)  # waha, evolution
    sender_type = Column(String(20), nullable=False, default="lead")  # lead, agent
    source = Column(String(20), nullable=True)  # lead, mobile
    quoted_message = Column(JSON, nullable=True)  # {id, body, from, type}
    reply_to_external_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    conversation = relationship("Conversation", back_populates="messages")

    @property
    def is_media(self) -> bool:
        return self.type in MEDIA_MESSAGE_TYPES

    def __repr__(self) -> str:
        return (
            f"<Message(id={self.id}, conversation_id={self.conversation_id}, "
            f"direction={self.direction}, type={self.type}, status={self.status})>"
        )
