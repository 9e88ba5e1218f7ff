# ============================================================================
# ITP Tracker - Configuration Management
# ============================================================================
# Environment-backed configuration with type casting and defaults.
# Each key is read from the upper-cased environment variable of the same
# name (e.g. ITP_REMINDER_DAYS) and can be overridden at runtime.
# ============================================================================

import logging
import os
from datetime import datetime
from typing import Any, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger("itp.config")

DEFAULT_TIMEZONE = "Europe/Bucharest"

# key -> (default, value_type, category)
DEFAULT_CONFIG = {
    # Scheduler
    "cron_enabled": (True, "bool", "cron"),
    "cron_timezone": (DEFAULT_TIMEZONE, "string", "cron"),
    "reminder_time": ("08:00", "string", "cron"),
    "cleanup_day": (1, "int", "cron"),
    "cleanup_time": ("00:00", "string", "cron"),

    # Reminder job
    "itp_reminder_days": (7, "int", "reminders"),
    "reminder_pacing_seconds": (0.5, "float", "reminders"),
    "notification_locale": ("ro", "string", "reminders"),
    "retention_months": (6, "int", "reminders"),

    # Twilio SMS
    "twilio_account_sid": ("", "string", "sms"),
    "twilio_auth_token": ("", "string", "sms"),
    "twilio_phone_number": ("", "string", "sms"),
    "sms_country_prefix": ("+4", "string", "sms"),

    # Email
    "email_provider": ("smtp", "string", "email"),
    "email_host": ("smtp.gmail.com", "string", "email"),
    "email_port": (587, "int", "email"),
    "email_secure": (False, "bool", "email"),
    "email_user": ("", "string", "email"),
    "email_password": ("", "string", "email"),
    "email_from": ("Service Auto <noreply@serviceauto.ro>", "string", "email"),
    "sendgrid_api_key": ("", "string", "email"),
    "email_timeout_seconds": (30, "int", "email"),

    # Contact block shown in emails
    "service_phone": ("0722-XXX-XXX", "string", "service"),
    "service_email": ("contact@serviceauto.ro", "string", "service"),

    # General
    "database_path": ("itp.db", "string", "general"),
    "shutdown_timeout_seconds": (10, "int", "general"),
}


class ReminderConfig:
    """
    Configuration manager for the ITP reminder system.

    Values are resolved once from the environment into a class-level cache.
    Runtime overrides (set()) win over the environment until reset_cache().
    """

    _cache: Dict[str, Any] = {}
    _cache_loaded: bool = False

    @classmethod
    def _load_cache(cls):
        """Load all config into memory cache."""
        if cls._cache_loaded:
            return

        for key, (default, vtype, category) in DEFAULT_CONFIG.items():
            raw = os.environ.get(key.upper())
            if raw is None or raw == "":
                cls._cache[key] = default
            else:
                cls._cache[key] = cls._cast_value(raw, vtype, default)

        cls._cache_loaded = True

    @classmethod
    def _cast_value(cls, value: str, value_type: str, default: Any = None) -> Any:
        """Cast string value to appropriate type."""
        if value is None:
            return default
        if value_type == "bool":
            return value.strip().lower() in ("true", "1", "yes", "on")
        if value_type == "int":
            try:
                return int(value)
            except ValueError:
                logger.warning(f"Invalid integer config value {value!r}, using {default}")
                return default
        if value_type == "float":
            try:
                return float(value)
            except ValueError:
                logger.warning(f"Invalid float config value {value!r}, using {default}")
                return default
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        cls._load_cache()
        return cls._cache.get(key, default)

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """Override a configuration value for this process."""
        cls._load_cache()
        old_value = cls._cache.get(key)
        cls._cache[key] = value
        if old_value != value:
            logger.info(f"Config {key} changed")

    @classmethod
    def get_all(cls, category: str = None) -> Dict[str, Any]:
        """Get all configuration values, optionally filtered by category."""
        cls._load_cache()

        if category is None:
            return dict(cls._cache)

        result = {}
        for key, (default, vtype, cat) in DEFAULT_CONFIG.items():
            if cat == category:
                result[key] = cls._cache.get(key, default)
        return result

    @classmethod
    def reset_cache(cls):
        """Drop overrides and re-read the environment on next access."""
        cls._cache = {}
        cls._cache_loaded = False


# Convenience functions
def get_config(key: str, default: Any = None) -> Any:
    """Get a configuration value."""
    return ReminderConfig.get(key, default)


def set_config(key: str, value: Any) -> None:
    """Set a configuration value."""
    ReminderConfig.set(key, value)


def reset_config() -> None:
    ReminderConfig.reset_cache()


# ============================================================================
# Timezone Helpers
# ============================================================================

def get_timezone() -> ZoneInfo:
    """Get the configured scheduling timezone."""
    tz_name = get_config("cron_timezone", DEFAULT_TIMEZONE)
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {tz_name!r}, falling back to {DEFAULT_TIMEZONE}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def get_local_now() -> datetime:
    """Current wall-clock time in the configured timezone, without tzinfo.

    Stored timestamps are naive local times, so comparisons happen in the
    same frame.
    """
    return datetime.now(get_timezone()).replace(tzinfo=None)


def parse_time_input(time_str: str, default: tuple = (8, 0)) -> tuple:
    """Parse a time string like '08:00' into (hour, minute)."""
    try:
        parts = time_str.split(":")
        return (int(parts[0]), int(parts[1]))
    except (AttributeError, IndexError, ValueError):
        logger.warning(f"Invalid time {time_str!r}, using {default[0]:02d}:{default[1]:02d}")
        return default
