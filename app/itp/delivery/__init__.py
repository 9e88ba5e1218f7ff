# ============================================================================
# ITP Tracker - Notification Delivery Channels
# ============================================================================
# SMS (Twilio) and Email (SMTP / SendGrid)
# ============================================================================

from .base import DeliveryChannel, DeliveryError, DeliveryResult, EmailContent
from .email import EmailChannel
from .sms import SMSChannel, normalize_phone

__all__ = [
    "DeliveryChannel",
    "DeliveryError",
    "DeliveryResult",
    "EmailContent",
    "EmailChannel",
    "SMSChannel",
    "normalize_phone",
]
