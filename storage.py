import json
import time
import sqlite3
import hashlib
import datetime as dt
from contextlib import contextmanager
from enum import Enum
from typing import List, Optional, Sequence

from models import Deliverable, Snapshot

SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS snapshots (
  day TEXT PRIMARY KEY,
  payload TEXT NOT NULL,
  content_hash TEXT NOT NULL,
  item_count INTEGER NOT NULL,
  stored_at INTEGER NOT NULL
);
"""


class PersistResult(Enum):
    INSERTED = "inserted"
    SKIPPED = "skipped"


@contextmanager
def _conn(db_path: str):
    conn = sqlite3.connect(db_path)
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def init_db(db_path: str) -> None:
    with _conn(db_path) as c:
        c.executescript(SCHEMA)


def serialize(deliverables: Sequence[Deliverable]) -> str:
    return json.dumps([d.to_dict() for d in deliverables], sort_keys=True,
                      separators=(",", ":"), ensure_ascii=False)


def _to_snapshot(row) -> Snapshot:
    day, payload = row
    items = tuple(Deliverable.from_dict(d) for d in json.loads(payload))
    return Snapshot(day=dt.date.fromisoformat(day), deliverables=items)


def persist(db_path: str, day: dt.date, deliverables: Sequence[Deliverable]) -> PersistResult:
    payload = serialize(deliverables)
    with _conn(db_path) as c:
        row = c.execute("SELECT payload FROM snapshots ORDER BY day DESC LIMIT 1").fetchone()
        if row and row[0] == payload:
            return PersistResult.SKIPPED
        c.execute(
            "INSERT INTO snapshots (day, payload, content_hash, item_count, stored_at) VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(day) DO UPDATE SET payload = excluded.payload, content_hash = excluded.content_hash, "
            "item_count = excluded.item_count, stored_at = excluded.stored_at",
            (day.isoformat(), payload, hashlib.sha256(payload.encode("utf-8")).hexdigest(),
             len(deliverables), int(time.time()))
        )
    return PersistResult.INSERTED


def latest(db_path: str, n: int = 2) -> List[Snapshot]:
    with _conn(db_path) as c:
        rows = c.execute(
            "SELECT day, payload FROM snapshots ORDER BY day DESC LIMIT ?", (n,)
        ).fetchall()
    return [_to_snapshot(r) for r in rows]


def snapshot_on_or_before(db_path: str, day: dt.date) -> Optional[Snapshot]:
    with _conn(db_path) as c:
        row = c.execute(
            "SELECT day, payload FROM snapshots WHERE day <= ? ORDER BY day DESC LIMIT 1",
            (day.isoformat(),)
        ).fetchone()
    return _to_snapshot(row) if row else None


def snapshot_before(db_path: str, day: dt.date) -> Optional[Snapshot]:
    with _conn(db_path) as c:
        row = c.execute(
            "SELECT day, payload FROM snapshots WHERE day < ? ORDER BY day DESC LIMIT 1",
            (day.isoformat(),)
        ).fetchone()
    return _to_snapshot(row) if row else None


def list_days(db_path: str) -> List[dt.date]:
    with _conn(db_path) as c:
        rows = c.execute("SELECT day FROM snapshots ORDER BY day DESC").fetchall()
    return [dt.date.fromisoformat(r[0]) for r in rows]


def count(db_path: str) -> int:
    with _conn(db_path) as c:
        return c.execute("SELECT COUNT(*) FROM snapshots").fetchone()[0]
