"""Base WhatsApp gateway client interfaces."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class GatewayError(Exception):
    """Raised when a gateway call fails at the transport level."""
    pass


@dataclass
class ContactProfile:
    """Contact details as the gateway knows them."""

    name: str | None = None
    push_name: str | None = None

    @property
    def display_name(self) -> str | None:
        return self.name or self.push_name


@dataclass
class MessageMedia:
    """Media reference for a message: a URL, inline base64, or both."""

    url: str | None = None
    data: str | None = None  # base64
    mimetype: str | None = None


@dataclass
class DownloadedMedia:
    """Bytes fetched from a media URL."""

    content: bytes
    content_type: str | None


class GatewayClientProtocol(ABC):
    """Protocol for WhatsApp gateway client implementations."""

    provider: str

    @abstractmethod
    async def resolve_privacy_id(self, privacy_id: str) -> str | None:
        """Resolve an opaque privacy id to a real phone number.

        Args:
            privacy_id: Privacy id digits (with or without "@lid")

        Returns:
            Phone number or None if the gateway cannot resolve it
        """
        pass

    @abstractmethod
    async def get_contact(self, phone: str) -> ContactProfile | None:
        """Look up a contact's name.

        Args:
            phone: Full international number

        Returns:
            ContactProfile or None if not found
        """
        pass

    @abstractmethod
    async def get_profile_picture_url(self, phone: str) -> str | None:
        """Look up a contact's profile picture URL.

        Args:
            phone: Full international number

        Returns:
            URL or None if the contact has none visible
        """
        pass

    @abstractmethod
    async def fetch_message_media(self, chat_id: str, message_id: str) -> MessageMedia | None:
        """Fetch a message by id and return its media reference.

        Args:
            chat_id: Chat the message belongs to
            message_id: Provider message id

        Returns:
            MessageMedia or None if the message has no retrievable media
        """
        pass

    @abstractmethod
    async def download_media(self, url: str) -> DownloadedMedia | None:
        """Download media bytes from a URL, authenticating against the gateway.

        Returns:
            DownloadedMedia or None on a non-success response
        """
        pass
