# ============================================================================
# ITP Tracker - Email Delivery Channel
# ============================================================================
# Supports SMTP (default) and SendGrid. Without credentials for the selected
# provider the channel runs in simulation mode.
# ============================================================================

import logging
import smtplib
import threading
import time
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid, parseaddr
from typing import Dict, Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import From, Mail

from .base import DeliveryChannel, DeliveryError, DeliveryResult, EmailContent
from ..config import get_config

logger = logging.getLogger("itp.delivery.email")


class EmailChannel(DeliveryChannel):
    """Email delivery using SMTP or SendGrid."""

    channel_name = "email"

    def __init__(self, config: Optional[Dict] = None):
        config = config or {}

        def _cfg(key):
            return config.get(key, get_config(key))

        self.provider = (_cfg("email_provider") or "smtp").lower()
        self.host = _cfg("email_host")
        self.port = int(_cfg("email_port"))
        self.secure = bool(_cfg("email_secure"))
        self.user = _cfg("email_user")
        self.password = _cfg("email_password")
        self.from_address = _cfg("email_from")
        self.sendgrid_api_key = _cfg("sendgrid_api_key")
        self.timeout = int(_cfg("email_timeout_seconds"))
        self._smtp: Optional[smtplib.SMTP] = None
        self._sendgrid: Optional[SendGridAPIClient] = None
        # smtplib sessions are not thread-safe; sends arrive from worker threads
        self._smtp_lock = threading.Lock()

        if not self.is_configured():
            logger.warning("Email credentials not configured. Email sending will be simulated.")

    def is_configured(self) -> bool:
        """Check if the selected provider has credentials."""
        if self.provider == "sendgrid":
            return bool(self.sendgrid_api_key)
        return bool(self.user and self.password)

    def send(self, recipient: str, content: EmailContent) -> DeliveryResult:
        """Send email."""
        if not self.is_configured():
            message_id = f"SIM{int(time.time() * 1000)}@simulated.local"
            logger.info(
                "[SIMULATED EMAIL] to=%s subject=%r html_len=%d",
                recipient, content.subject, len(content.html),
            )
            return DeliveryResult(
                success=True,
                recipient=recipient,
                channel="email",
                provider_id=message_id,
                simulated=True,
            )

        if self.provider == "sendgrid":
            return self._send_sendgrid(recipient, content)
        return self._send_smtp(recipient, content)

    # ------------------------------------------------------------------
    # SMTP
    # ------------------------------------------------------------------

    def _connect_smtp(self) -> smtplib.SMTP:
        if self.secure:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            server.starttls()
        server.login(self.user, self.password)
        logger.info(f"SMTP connection established to {self.host}:{self.port}")
        return server

    def _get_smtp(self) -> smtplib.SMTP:
        """Reuse the cached SMTP session, reconnecting when it has dropped."""
        if self._smtp is not None:
            try:
                self._smtp.noop()
                return self._smtp
            except smtplib.SMTPException:
                logger.info("SMTP session dropped, reconnecting")
                self._smtp = None
            except OSError:
                logger.info("SMTP socket closed, reconnecting")
                self._smtp = None
        self._smtp = self._connect_smtp()
        return self._smtp

    def _send_smtp(self, recipient: str, content: EmailContent) -> DeliveryResult:
        """Send email via SMTP."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = content.subject
        msg["From"] = self.from_address
        msg["To"] = recipient
        msg["Message-ID"] = make_msgid()
        if content.text:
            msg.attach(MIMEText(content.text, "plain", "utf-8"))
        msg.attach(MIMEText(content.html, "html", "utf-8"))

        envelope_from = parseaddr(self.from_address)[1] or self.user

        body = msg.as_string()
        with self._smtp_lock:
            try:
                server = self._get_smtp()
                refused = server.sendmail(envelope_from, [recipient], body)
            except smtplib.SMTPAuthenticationError as e:
                self._smtp = None
                logger.error(f"SMTP auth failed: {e}")
                raise DeliveryError("email", "Email sending failed: SMTP authentication failed") from e
            except (smtplib.SMTPException, OSError) as e:
                self._smtp = None
                logger.error(f"SMTP send failed for {recipient}: {e}")
                raise DeliveryError("email", f"Email sending failed: {e}") from e

        if refused:
            raise DeliveryError("email", f"Email sending failed: recipient refused {recipient}")

        logger.info(f"Email sent via SMTP to {recipient}")
        return DeliveryResult(
            success=True,
            recipient=recipient,
            channel="email",
            provider_id=msg.get("Message-ID"),
        )

    # ------------------------------------------------------------------
    # SendGrid
    # ------------------------------------------------------------------

    def _get_sendgrid(self) -> SendGridAPIClient:
        if self._sendgrid is None:
            self._sendgrid = SendGridAPIClient(self.sendgrid_api_key)
        return self._sendgrid

    def _send_sendgrid(self, recipient: str, content: EmailContent) -> DeliveryResult:
        """Send email via SendGrid."""
        name, address = parseaddr(self.from_address)
        message = Mail(
            from_email=From(address, name or None),
            to_emails=recipient,
            subject=content.subject,
            html_content=content.html,
            plain_text_content=content.text,
        )

        try:
            response = self._get_sendgrid().send(message)
        except Exception as e:
            logger.error(f"SendGrid error for {recipient}: {e}")
            raise DeliveryError("email", f"Email sending failed: {e}") from e

        if response.status_code not in (200, 201, 202):
            raise DeliveryError("email", f"Email sending failed: SendGrid returned status {response.status_code}")

        message_id = response.headers.get("X-Message-Id", "") if response.headers else ""
        logger.info(f"Email sent via SendGrid to {recipient}")
        return DeliveryResult(
            success=True,
            recipient=recipient,
            channel="email",
            provider_id=message_id,
        )

    # ------------------------------------------------------------------

    def verify_connection(self) -> bool:
        """Test email configuration."""
        if not self.is_configured():
            return False
        if self.provider == "sendgrid":
            return True
        try:
            with self._smtp_lock:
                self._get_smtp()
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email server connection failed: {e}")
            return False

    def close(self) -> None:
        with self._smtp_lock:
            if self._smtp is not None:
                try:
                    self._smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.info(f"SMTP quit failed: {e}")
                self._smtp = None
        self._sendgrid = None
