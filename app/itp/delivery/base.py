# ============================================================================
# ITP Tracker - Base Delivery Channel
# ============================================================================

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


class DeliveryError(Exception):
    """A transport could not deliver a message (auth, connection, rejection)."""

    def __init__(self, channel: str, message: str):
        super().__init__(message)
        self.channel = channel


@dataclass
class DeliveryResult:
    """Result of a successful delivery attempt."""
    success: bool
    recipient: str
    channel: str
    provider_id: Optional[str] = None
    simulated: bool = False


@dataclass(frozen=True)
class EmailContent:
    subject: str
    html: str
    text: Optional[str] = None


class DeliveryChannel(ABC):
    """
    Abstract base class for delivery channels.

    send() returns a DeliveryResult or raises DeliveryError. Channels keep no
    per-message state; the transport handle is created lazily and reused.
    """

    channel_name: str = "base"

    @abstractmethod
    def send(self, recipient: str, content) -> DeliveryResult:
        """Send a message through this channel."""

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the channel has credentials; otherwise sends are simulated."""

    def verify_connection(self) -> bool:
        """Test if the channel can reach its provider."""
        return self.is_configured()

    def close(self) -> None:
        """Release any cached transport handle."""
