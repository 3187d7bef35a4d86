"""Channel instance model."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from app.persistence.database import Base
from app.persistence.types import EncryptedString

GATEWAY_PROVIDERS = ("waha", "evolution")


class ChannelInstance(Base):
    """One configured connection (line) on a WhatsApp gateway."""

    __tablename__ = "channel_instances"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=True, index=True)
    provider = Column(String(20), nullable=False, default="waha")  # waha, evolution
    session_name = Column(String(255), nullable=False, index=True)  # WAHA session / Evolution instance name
    base_url = Column(String(512), nullable=False)
    api_key = Column(EncryptedString(255), nullable=True)
    webhook_secret = Column(EncryptedString(255), nullable=True)
    phone_number = Column(String(50), nullable=True)  # The line's own number
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def api_base_url(self) -> str:
        return (self.base_url or "").rstrip("/")

    def __repr__(self) -> str:
        return f"<ChannelInstance(id={self.id}, provider={self.provider}, session={self.session_name}, active={self.is_active})>"
