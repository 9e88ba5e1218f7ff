# ============================================================================
# ITP Tracker - Database Models & Query Helpers
# ============================================================================
# Clients (vehicle owners + inspection expiry) and the notification ledger.
# The ledger is append-only: rows are inserted once per send attempt and
# only ever removed in bulk by the retention cleanup.
# ============================================================================

import sqlite3
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional, List, Dict

from .config import get_config, get_local_now
from .timeutil import to_db, from_db

CHANNEL_SMS = "SMS"
CHANNEL_EMAIL = "EMAIL"
CHANNELS = (CHANNEL_SMS, CHANNEL_EMAIL)

STATUS_SENT = "sent"
STATUS_FAILED = "failed"
STATUS_PENDING = "pending"


class ClientNotFoundError(LookupError):
    """No client with the requested id."""


class DuplicateLicensePlateError(ValueError):
    """License plate already registered (active or not)."""


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS clients (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    license_plate TEXT UNIQUE NOT NULL,
    phone TEXT,
    email TEXT,
    itp_expiration TEXT NOT NULL,
    active INTEGER DEFAULT 1,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id TEXT NOT NULL REFERENCES clients(id),
    channel TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    message TEXT,
    error TEXT,
    provider_id TEXT,
    sent_at TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_clients_expiration ON clients(active, itp_expiration);
CREATE INDEX IF NOT EXISTS idx_notifications_client_sent ON notifications(client_id, status, sent_at);
CREATE INDEX IF NOT EXISTS idx_notifications_created ON notifications(created_at);
"""


def get_db():
    """Get database connection with row factory."""
    conn = sqlite3.connect(get_config("database_path"), timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_itp_schema():
    """Create client and notification tables if they don't exist."""
    conn = get_db()
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    conn.close()


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class Client:
    id: str
    name: str
    license_plate: str
    phone: str
    email: str
    itp_expiration: datetime
    active: bool = True
    created_at: Optional[datetime] = None

    def to_dict(self):
        d = asdict(self)
        d["itp_expiration"] = self.itp_expiration.isoformat()
        d["created_at"] = self.created_at.isoformat() if self.created_at else None
        return d

    @classmethod
    def from_row(cls, row):
        d = dict(row)
        d["itp_expiration"] = from_db(d["itp_expiration"])
        d["created_at"] = from_db(d["created_at"]) if d.get("created_at") else None
        d["active"] = bool(d.get("active", 1))
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class Notification:
    id: Optional[int] = None
    client_id: str = ""
    channel: str = CHANNEL_SMS
    status: str = STATUS_PENDING
    message: str = ""
    error: Optional[str] = None
    provider_id: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_dict(self):
        d = asdict(self)
        for key in ("sent_at", "created_at"):
            d[key] = d[key].isoformat() if d[key] else None
        return d

    @classmethod
    def from_row(cls, row):
        d = dict(row)
        for key in ("sent_at", "created_at"):
            d[key] = from_db(d[key]) if d.get(key) else None
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


# ============================================================================
# Repositories
# ============================================================================

class ClientRepository:
    @staticmethod
    def create(name: str, license_plate: str, phone: str, email: str,
               itp_expiration: datetime, active: bool = True) -> Client:
        plate = license_plate.strip().upper()
        client = Client(
            id=str(uuid.uuid4()),
            name=name.strip(),
            license_plate=plate,
            phone=phone,
            email=email,
            itp_expiration=itp_expiration,
            active=active,
            created_at=get_local_now(),
        )
        conn = get_db()
        try:
            conn.execute(
                """INSERT INTO clients
                   (id, name, license_plate, phone, email, itp_expiration, active, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (client.id, client.name, client.license_plate, client.phone, client.email,
                 to_db(client.itp_expiration), 1 if active else 0, to_db(client.created_at)),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise DuplicateLicensePlateError(f"License plate {plate} already exists") from e
        finally:
            conn.close()
        return client

    @staticmethod
    def get_by_id(client_id: str) -> Optional[Client]:
        conn = get_db()
        row = conn.execute("SELECT * FROM clients WHERE id = ?", (client_id,)).fetchone()
        conn.close()
        return Client.from_row(row) if row else None

    @staticmethod
    def require(client_id: str) -> Client:
        client = ClientRepository.get_by_id(client_id)
        if client is None:
            raise ClientNotFoundError(f"Client {client_id} not found")
        return client

    @staticmethod
    def find_active_expiring_between(start: datetime, end: datetime) -> List[Client]:
        """Active clients with start <= itp_expiration <= end, most urgent first."""
        conn = get_db()
        rows = conn.execute(
            """SELECT * FROM clients
               WHERE active = 1
                 AND itp_expiration >= ?
                 AND itp_expiration <= ?
               ORDER BY itp_expiration ASC""",
            (to_db(start), to_db(end)),
        ).fetchall()
        conn.close()
        return [Client.from_row(r) for r in rows]

    @staticmethod
    def deactivate(client_id: str) -> bool:
        conn = get_db()
        cur = conn.execute("UPDATE clients SET active = 0 WHERE id = ?", (client_id,))
        conn.commit()
        conn.close()
        return cur.rowcount > 0


class NotificationRepository:
    @staticmethod
    def create(n: Notification) -> int:
        if n.created_at is None:
            n.created_at = get_local_now()
        conn = get_db()
        cur = conn.execute(
            """INSERT INTO notifications
               (client_id, channel, status, message, error, provider_id, sent_at, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (n.client_id, n.channel, n.status, n.message, n.error, n.provider_id,
             to_db(n.sent_at) if n.sent_at else None, to_db(n.created_at)),
        )
        conn.commit()
        nid = cur.lastrowid
        conn.close()
        n.id = nid
        return nid

    @staticmethod
    def get_by_id(notification_id: int) -> Optional[Notification]:
        conn = get_db()
        row = conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
        conn.close()
        return Notification.from_row(row) if row else None

    @staticmethod
    def find_first_sent_between(client_id: str, start: datetime, end: datetime) -> Optional[Notification]:
        """First successful send to this client (any channel) inside [start, end]."""
        conn = get_db()
        row = conn.execute(
            """SELECT * FROM notifications
               WHERE client_id = ?
                 AND status = ?
                 AND sent_at >= ?
                 AND sent_at <= ?
               ORDER BY sent_at ASC
               LIMIT 1""",
            (client_id, STATUS_SENT, to_db(start), to_db(end)),
        ).fetchone()
        conn.close()
        return Notification.from_row(row) if row else None

    @staticmethod
    def get_for_client(client_id: str) -> List[Notification]:
        conn = get_db()
        rows = conn.execute(
            "SELECT * FROM notifications WHERE client_id = ? ORDER BY created_at DESC, id DESC",
            (client_id,),
        ).fetchall()
        conn.close()
        return [Notification.from_row(r) for r in rows]

    @staticmethod
    def get_recent(limit: int = 20, offset: int = 0, channel: str = None,
                   status: str = None, client_id: str = None) -> Dict:
        """Paginated listing joined with the owning client's name and plate."""
        where = []
        params = []
        if channel:
            where.append("n.channel = ?")
            params.append(channel)
        if status:
            where.append("n.status = ?")
            params.append(status)
        if client_id:
            where.append("n.client_id = ?")
            params.append(client_id)
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""

        conn = get_db()
        total = conn.execute(
            f"SELECT COUNT(*) FROM notifications n {where_sql}", params
        ).fetchone()[0]
        rows = conn.execute(
            f"""SELECT n.*, c.name AS client_name, c.license_plate AS client_license_plate
                FROM notifications n
                LEFT JOIN clients c ON n.client_id = c.id
                {where_sql}
                ORDER BY n.created_at DESC, n.id DESC
                LIMIT ? OFFSET ?""",
            params + [limit, offset],
        ).fetchall()
        conn.close()

        items = []
        for r in rows:
            d = Notification.from_row(r).to_dict()
            d["client"] = {
                "id": r["client_id"],
                "name": r["client_name"],
                "licensePlate": r["client_license_plate"],
            }
            items.append(d)
        return {"total": total, "items": items}

    @staticmethod
    def stats() -> Dict:
        conn = get_db()
        total = conn.execute("SELECT COUNT(*) FROM notifications").fetchone()[0]
        by_status = {s: 0 for s in (STATUS_SENT, STATUS_FAILED, STATUS_PENDING)}
        for row in conn.execute("SELECT status, COUNT(*) AS cnt FROM notifications GROUP BY status"):
            by_status[row["status"]] = row["cnt"]
        by_channel = {"sms": 0, "email": 0}
        for row in conn.execute("SELECT channel, COUNT(*) AS cnt FROM notifications GROUP BY channel"):
            by_channel[row["channel"].lower()] = row["cnt"]
        conn.close()
        return {"total": total, "byStatus": by_status, "byType": by_channel}

    @staticmethod
    def delete_older_than(cutoff: datetime) -> int:
        """Delete every row whose attempt time is before cutoff. Returns count."""
        conn = get_db()
        cur = conn.execute("DELETE FROM notifications WHERE created_at < ?", (to_db(cutoff),))
        conn.commit()
        count = cur.rowcount
        conn.close()
        return count
