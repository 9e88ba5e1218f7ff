"""
ITP Tracker — Message Composer

Builds the SMS text and the HTML email for one client reminder. Output is a
pure function of (client, days_remaining, locale, contact): no clock reads.
"""
import html
import re
from dataclasses import dataclass
from typing import Dict, Optional

from .config import get_config
from .locales import LOCALES, DEFAULT_LOCALE
from .timeutil import format_date

URGENT_THRESHOLD_DAYS = 3
URGENT_COLOR = "#ef4444"
NORMAL_COLOR = "#f59e0b"

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")
_TAG = re.compile(r"<[^>]*>")
_HEAD = re.compile(r"<head>.*?</head>", re.S)


@dataclass(frozen=True)
class ComposedMessage:
    sms_text: str
    email_subject: str
    email_html: str
    email_text: str
    expired: bool
    urgent: bool


def get_translations(locale: Optional[str] = None) -> Dict:
    """Translation table for locale, falling back to the default locale."""
    return LOCALES.get(locale or DEFAULT_LOCALE) or LOCALES[DEFAULT_LOCALE]


def interpolate(template: str, variables: Dict) -> str:
    """Replace {{key}} placeholders; unknown keys are left untouched."""
    def _sub(match):
        key = match.group(1)
        value = variables.get(key)
        return match.group(0) if value is None else str(value)
    return _PLACEHOLDER.sub(_sub, template)


def _days_word(table: Dict, days: int) -> str:
    return table["day"] if days == 1 else table["days"]


def compose(client, days_remaining: int, locale: Optional[str] = None,
            contact: Optional[Dict] = None) -> ComposedMessage:
    """Compose every channel's content for one reminder."""
    t = get_translations(locale)
    expired = days_remaining <= 0
    urgent = days_remaining <= URGENT_THRESHOLD_DAYS

    if contact is None:
        contact = {
            "phone": get_config("service_phone"),
            "email": get_config("service_email"),
        }

    variables = {
        "name": client.name,
        "licensePlate": client.license_plate,
        "days": days_remaining,
        "daysWord": _days_word(t["sms"], days_remaining),
        "date": format_date(client.itp_expiration),
    }

    sms_key = "expired" if expired else "reminder"
    sms_text = interpolate(t["sms"][sms_key], variables)

    subject_key = "subjectExpired" if expired else "subject"
    subject = interpolate(t["email"][subject_key], variables)

    body = _render_email(client, days_remaining, t["email"], expired, urgent, contact)
    text = re.sub(r"\n\s*\n+", "\n\n", html.unescape(_TAG.sub("", _HEAD.sub("", body)))).strip()

    return ComposedMessage(
        sms_text=sms_text,
        email_subject=subject,
        email_html=body,
        email_text=text,
        expired=expired,
        urgent=urgent,
    )


def _render_email(client, days_remaining: int, t: Dict, expired: bool,
                  urgent: bool, contact: Dict) -> str:
    color = URGENT_COLOR if urgent else NORMAL_COLOR
    name = html.escape(client.name)
    plate = html.escape(client.license_plate)
    date_str = format_date(client.itp_expiration)

    if expired:
        remaining = t["expired"]
        notice = f'<p style="color: {URGENT_COLOR}; font-weight: bold;">&#9888; {t["warningExpired"]}</p>'
    else:
        remaining = f"{days_remaining} {_days_word(t, days_remaining)}"
        notice = f'<p>{t["scheduleMessage"]}</p>'

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background-color: {color}; color: white; padding: 20px; text-align: center; border-radius: 5px 5px 0 0; }}
    .content {{ background-color: #f9f9f9; padding: 30px; border: 1px solid #ddd; border-radius: 0 0 5px 5px; }}
    .highlight {{ background-color: #fff; padding: 15px; margin: 20px 0; border-left: 4px solid {color}; }}
    .footer {{ text-align: center; margin-top: 20px; color: #666; font-size: 14px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1>{t["title"]}</h1>
    </div>
    <div class="content">
      <p>{t["greeting"]} <strong>{name}</strong>,</p>

      <div class="highlight">
        <p>{t["intro"]}</p>
        <ul>
          <li><strong>{t["registrationNumber"]}:</strong> {plate}</li>
          <li><strong>{t["expirationDate"]}:</strong> {date_str}</li>
          <li><strong>{t["timeRemaining"]}:</strong> {remaining}</li>
        </ul>
      </div>

      {notice}

      <p><strong>{t["contactTitle"]}:</strong><br>
      {t["phone"]}: {html.escape(contact.get("phone") or "")}<br>
      {t["email"]}: {html.escape(contact.get("email") or "")}</p>

      <p>{t["regards"]},<br>
      <strong>{t["team"]}</strong></p>
    </div>
    <div class="footer">
      <p>{t["footer"]}</p>
    </div>
  </div>
</body>
</html>
"""
