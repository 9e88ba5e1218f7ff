# ============================================================================
# ITP Tracker - SMS Delivery Channel
# ============================================================================
# Twilio SMS delivery. Without credentials the channel runs in simulation
# mode: every send succeeds and a synthetic SID is returned.
# ============================================================================

import logging
import re
import time
from typing import Dict, Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient

from .base import DeliveryChannel, DeliveryError, DeliveryResult
from ..config import get_config

logger = logging.getLogger("itp.delivery.sms")

_SEPARATORS = re.compile(r"[\s\-.()]")


def normalize_phone(phone: str, country_prefix: str = "+4") -> str:
    """Normalize a phone number to international format.

    Numbers already starting with '+' are kept; local numbers starting with
    '0' get the country prefix ('0722...' -> '+40722...'); anything else
    is assumed to carry its country code and only gets a '+'.
    """
    number = _SEPARATORS.sub("", phone or "")
    if not number:
        raise ValueError("Empty phone number")
    if number.startswith("+"):
        return number
    if number.startswith("00"):
        return "+" + number[2:]
    if number.startswith("0"):
        return f"{country_prefix}{number}"
    return f"+{number}"


class SMSChannel(DeliveryChannel):
    """SMS delivery using Twilio."""

    channel_name = "sms"

    def __init__(self, config: Optional[Dict] = None):
        config = config or {}
        self.account_sid = config.get("twilio_account_sid", get_config("twilio_account_sid"))
        self.auth_token = config.get("twilio_auth_token", get_config("twilio_auth_token"))
        self.from_number = config.get("twilio_phone_number", get_config("twilio_phone_number"))
        self.country_prefix = config.get("sms_country_prefix", get_config("sms_country_prefix"))
        self._client = None

        if not self.is_configured():
            logger.warning("Twilio credentials not configured. SMS sending will be simulated.")

    def is_configured(self) -> bool:
        """Check if Twilio credentials are configured."""
        return bool(self.account_sid and self.auth_token)

    def _get_client(self) -> TwilioClient:
        """Lazy-load the Twilio client once per channel."""
        if self._client is None:
            self._client = TwilioClient(self.account_sid, self.auth_token)
            logger.info("Twilio client initialized")
        return self._client

    def send(self, recipient: str, content: str) -> DeliveryResult:
        """Send SMS via Twilio."""
        if not self.is_configured():
            sid = f"SIM{int(time.time() * 1000)}"
            logger.info(f"[SIMULATED SMS] to={recipient} sid={sid} body_len={len(content)}")
            return DeliveryResult(
                success=True,
                recipient=recipient,
                channel="sms",
                provider_id=sid,
                simulated=True,
            )

        try:
            to_number = normalize_phone(recipient, self.country_prefix)
        except ValueError as e:
            raise DeliveryError("sms", f"SMS sending failed: {e}") from e

        try:
            message = self._get_client().messages.create(
                body=content,
                from_=self.from_number,
                to=to_number,
            )
        except TwilioRestException as e:
            logger.error(f"Twilio error for {to_number}: {e.msg}")
            raise DeliveryError("sms", f"SMS sending failed: {e.msg}") from e
        except Exception as e:
            logger.error(f"SMS send failed for {to_number}: {e}")
            raise DeliveryError("sms", f"SMS sending failed: {e}") from e

        logger.info(f"SMS sent via Twilio to {to_number} (SID: {message.sid})")
        return DeliveryResult(
            success=True,
            recipient=to_number,
            channel="sms",
            provider_id=message.sid,
        )

    def check_status(self, sid: str) -> Dict:
        """Look up the carrier delivery status of a sent message by SID."""
        if not self.is_configured():
            return {"sid": sid, "status": "simulated"}

        try:
            message = self._get_client().messages(sid).fetch()
        except TwilioRestException as e:
            logger.error(f"Twilio status lookup failed for {sid}: {e.msg}")
            raise DeliveryError("sms", f"SMS status check failed: {e.msg}") from e
        except Exception as e:
            logger.error(f"Twilio status lookup failed for {sid}: {e}")
            raise DeliveryError("sms", f"SMS status check failed: {e}") from e

        return {
            "sid": message.sid,
            "status": message.status,
            "to": message.to,
            "errorCode": message.error_code,
            "errorMessage": message.error_message,
        }

    def verify_connection(self) -> bool:
        """Check the Twilio account is reachable and active."""
        if not self.is_configured():
            return False
        try:
            account = self._get_client().api.accounts(self.account_sid).fetch()
            return account.status == "active"
        except Exception as e:
            logger.error(f"Twilio status check failed: {e}")
            return False

    def close(self) -> None:
        self._client = None
