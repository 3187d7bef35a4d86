"""Lead model."""

import re
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from app.persistence.database import Base

if TYPE_CHECKING:
    from app.persistence.models.conversation import Conversation

PLACEHOLDER_NAME_PREFIX = "Lead "


class Lead(Base):
    """A WhatsApp contact, keyed by its canonical local phone number."""

    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=True, index=True)
    phone = Column(String(50), nullable=False, unique=True, index=True)  # Local number, country code stripped
    country_code = Column(String(5), nullable=True)
    name = Column(String(255), nullable=True)
    whatsapp_name = Column(String(255), nullable=True)  # Latest push name reported by WhatsApp
    avatar_url = Column(String(1024), nullable=True)
    source = Column(String(50), nullable=False, default="whatsapp")
    is_privacy_id = Column(Boolean, nullable=False, default=False)  # phone holds an unresolved privacy id
    privacy_id = Column(String(64), nullable=True, index=True)
    last_interaction_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    conversations = relationship("Conversation", back_populates="lead")

    @property
    def is_pending_verification(self) -> bool:
        """True while the lead only carries a generated placeholder name."""
        return is_placeholder_name(self.name)

    def __repr__(self) -> str:
        return f"<Lead(id={self.id}, phone={self.phone}, country_code={self.country_code}, name={self.name})>"


def is_placeholder_name(name: str | None) -> bool:
    """Whether a lead name was generated rather than reported by the contact."""
    if not name or not name.strip():
        return True
    if name.startswith(PLACEHOLDER_NAME_PREFIX):
        return True
    # Bare numbers, with or without formatting
    return re.fullmatch(r"[\d\s()+\-]+", name) is not None
