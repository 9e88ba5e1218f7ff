"""
ITP Tracker — Test Infrastructure (conftest.py)
================================================
Provides:
  - Isolated sqlite database per test
  - Fake delivery channels that record what they were asked to send
  - A fixed clock (2026-03-10 08:00 local)
  - Client seed + DB assertion helpers
"""

import datetime
import os
import sqlite3
import sys

import pytest

# Ensure project root is on path
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT_DIR)

from app.itp.config import get_config, set_config, reset_config
from app.itp.delivery import DeliveryError, DeliveryResult
from app.itp.dispatcher import NotificationDispatcher
from app.itp.engine import ReminderJob
from app.itp.models import init_itp_schema, ClientRepository

FIXED_NOW = datetime.datetime(2026, 3, 10, 8, 0, 0)
TODAY = datetime.datetime.combine(FIXED_NOW.date(), datetime.time.min)


# ============================================================================
# Fakes
# ============================================================================

class FakeChannel:
    """Records sends; raises DeliveryError when fail=True or the recipient is in fail_for."""

    def __init__(self, name, fail=False, fail_for=()):
        self.name = name
        self.fail = fail
        self.fail_for = set(fail_for)
        self.sent = []
        self.closed = False

    def send(self, recipient, content):
        self.sent.append((recipient, content))
        if self.fail or recipient in self.fail_for:
            raise DeliveryError(self.name, f"{self.name} provider unavailable")
        return DeliveryResult(
            success=True,
            recipient=recipient,
            channel=self.name,
            provider_id=f"FAKE-{self.name}-{len(self.sent)}",
        )

    def check_status(self, sid):
        if self.fail:
            raise DeliveryError(self.name, f"{self.name} status check failed")
        return {"sid": sid, "status": "delivered"}

    def is_configured(self):
        return True

    def close(self):
        self.closed = True


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def test_db(tmp_path):
    """Fresh config and database for every test."""
    reset_config()
    db_path = str(tmp_path / "itp_test.db")
    set_config("database_path", db_path)
    set_config("cron_enabled", False)
    set_config("reminder_pacing_seconds", 0)
    init_itp_schema()
    yield db_path
    reset_config()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def sms_channel():
    return FakeChannel("sms")


@pytest.fixture
def email_channel():
    return FakeChannel("email")


@pytest.fixture
def dispatcher(sms_channel, email_channel, clock):
    return NotificationDispatcher(sms_channel, email_channel, locale="en", clock=clock)


@pytest.fixture
def job(dispatcher, clock):
    return ReminderJob(dispatcher, clock=clock, lookahead_days=7, pacing_seconds=0)


# ============================================================================
# Helpers
# ============================================================================

_plate_seq = iter(range(100, 10000))


def make_client(name="Popescu Ion", days=3, expires=None, active=True, **kwargs):
    """Insert a client expiring `days` days from TODAY at 00:00 (or at `expires`)."""
    n = next(_plate_seq)
    return ClientRepository.create(
        name=name,
        license_plate=kwargs.get("license_plate", f"b-{n}-abc"),
        phone=kwargs.get("phone", f"07221{n:05d}"),
        email=kwargs.get("email", f"client{n}@example.com"),
        itp_expiration=expires if expires is not None else TODAY + datetime.timedelta(days=days),
        active=active,
    )


def db_query(sql, params=()):
    conn = sqlite3.connect(get_config("database_path"))
    conn.row_factory = sqlite3.Row
    rows = [dict(r) for r in conn.execute(sql, params).fetchall()]
    conn.close()
    return rows


def db_count(table, where="1=1", params=()):
    return db_query(f"SELECT COUNT(*) AS cnt FROM {table} WHERE {where}", params)[0]["cnt"]
