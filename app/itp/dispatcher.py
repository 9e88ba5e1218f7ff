"""
ITP Tracker — Notification Dispatcher

Sends one client's reminder over SMS and/or email and records every attempt
in the notification ledger. A failing channel is recorded and reported, it
never stops the sibling channel.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .composer import compose, ComposedMessage
from .config import get_config, get_local_now
from .delivery import DeliveryChannel, EmailContent
from .models import (
    Client, ClientNotFoundError, ClientRepository, Notification, NotificationRepository,
    CHANNEL_SMS, CHANNEL_EMAIL, CHANNELS, STATUS_SENT, STATUS_FAILED,
)
from .timeutil import days_remaining

logger = logging.getLogger("itp.dispatcher")


@dataclass
class ChannelOutcome:
    success: bool
    error: Optional[str] = None
    notification_id: Optional[int] = None
    provider_id: Optional[str] = None

    def to_dict(self) -> Dict:
        d = {"success": self.success, "notificationId": self.notification_id}
        if self.error is not None:
            d["error"] = self.error
        if self.provider_id is not None:
            d["providerId"] = self.provider_id
        return d


class NotificationDispatcher:
    """
    Orchestrates compose -> send -> record for one client.

    The channels are owned resources injected at construction, so tests can
    pass fakes and production builds them once at startup.
    """

    def __init__(self, sms_channel: DeliveryChannel, email_channel: DeliveryChannel,
                 locale: Optional[str] = None, clock: Callable = None):
        self.sms_channel = sms_channel
        self.email_channel = email_channel
        self.locale = locale or get_config("notification_locale")
        self.clock = clock or get_local_now

    def compose(self, client: Client, days: int) -> ComposedMessage:
        return compose(client, days, self.locale, contact={
            "phone": get_config("service_phone"),
            "email": get_config("service_email"),
        })

    async def _deliver(self, client: Client, channel_name: str, channel: DeliveryChannel,
                       destination: str, content, ledger_message: str) -> ChannelOutcome:
        """Send through one channel and append exactly one ledger row."""
        try:
            result = await asyncio.to_thread(channel.send, destination, content)
        except Exception as e:
            error = str(e)
            logger.error(f"[ITP] {channel_name} to {client.name} failed: {error}")
            nid = await asyncio.to_thread(NotificationRepository.create, Notification(
                client_id=client.id,
                channel=channel_name,
                status=STATUS_FAILED,
                message=ledger_message,
                error=error,
                created_at=self.clock(),
            ))
            return ChannelOutcome(success=False, error=error, notification_id=nid)

        now = self.clock()
        nid = await asyncio.to_thread(NotificationRepository.create, Notification(
            client_id=client.id,
            channel=channel_name,
            status=STATUS_SENT,
            message=ledger_message,
            provider_id=result.provider_id,
            sent_at=now,
            created_at=now,
        ))
        return ChannelOutcome(success=True, notification_id=nid, provider_id=result.provider_id)

    async def dispatch_sms(self, client: Client, days: int,
                           message: Optional[ComposedMessage] = None) -> ChannelOutcome:
        message = message or self.compose(client, days)
        return await self._deliver(client, CHANNEL_SMS, self.sms_channel,
                                   client.phone, message.sms_text, message.sms_text)

    async def dispatch_email(self, client: Client, days: int,
                             message: Optional[ComposedMessage] = None) -> ChannelOutcome:
        message = message or self.compose(client, days)
        content = EmailContent(subject=message.email_subject, html=message.email_html,
                               text=message.email_text)
        return await self._deliver(client, CHANNEL_EMAIL, self.email_channel,
                                   client.email, content, message.email_subject)

    async def dispatch_both(self, client: Client, days: int) -> Dict[str, ChannelOutcome]:
        """Attempt SMS then email; each is recorded on its own."""
        message = self.compose(client, days)
        sms = await self.dispatch_sms(client, days, message)
        email = await self.dispatch_email(client, days, message)
        return {"sms": sms, "email": email}

    async def dispatch_single(self, client_id: str, channel: str) -> Dict:
        """
        Re-send one channel for one client (manual retry / test send).

        Days remaining are recomputed from the current clock. Always returns
        a status dict; nothing is raised to the caller.
        """
        channel = (channel or "").upper()
        if channel not in CHANNELS:
            return {"success": False, "error": f"Invalid channel {channel!r}. Use: SMS or EMAIL"}

        try:
            client = await asyncio.to_thread(ClientRepository.require, client_id)
            days = days_remaining(client.itp_expiration, self.clock())
            if channel == CHANNEL_SMS:
                outcome = await self.dispatch_sms(client, days)
            else:
                outcome = await self.dispatch_email(client, days)
        except ClientNotFoundError:
            return {"success": False, "error": "Client not found"}
        except Exception as e:
            logger.error(f"[ITP] Single dispatch {channel} for {client_id} failed: {e}", exc_info=True)
            return {"success": False, "channel": channel, "error": str(e)}

        result = outcome.to_dict()
        result["channel"] = channel
        result["daysRemaining"] = days
        return result
