"""
local_db.py - SQLite Offline Queue Store

This module keeps every completed payment and complaint on local disk
until the Sync Reconciler confirms delivery to the server. Rows are only
ever appended by the workflows; their sync status is changed through the
claim / confirm / release primitives used by the reconciler.
"""

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..config import DATA_DIR
from .ids import IdGenerator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("LocalDB")

DB_PATH = DATA_DIR / "kiosk_queue.db"

RECORD_KINDS = frozenset({"payment", "complaint"})

STATUS_PENDING = "pending"
STATUS_IN_FLIGHT = "in_flight"
STATUS_SYNCED = "synced"


def utc_now_iso(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class QueueRecord:
    """One durable unit of work waiting for network confirmation."""

    local_id: str
    kind: str
    payload: Dict
    created_at: str
    synced: bool = False
    created_online: bool = False
    attempts: int = 0
    last_error: Optional[str] = None
    synced_at: Optional[str] = None

    def to_sync_dict(self) -> Dict:
        return {
            "local_id": self.local_id,
            "kind": self.kind,
            "created_at": self.created_at,
            "payload": self.payload,
        }

    def to_dict(self) -> Dict:
        return {
            **self.to_sync_dict(),
            "synced": self.synced,
            "created_online": self.created_online,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "synced_at": self.synced_at,
        }


class LocalDatabase:
    """SQLite-backed offline queue plus kiosk activity log."""

    def __init__(self, db_path=None, id_generator: Optional[IdGenerator] = None):
        self.db_path = str(db_path or DB_PATH)
        self.ids = id_generator or IdGenerator()
        self._ensure_data_dir()
        self._init_db()
        self.recover_in_flight()
        self._pending_count = self._count_unsynced()

    def _ensure_data_dir(self):
        """Create data directory if it doesn't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema if tables don't exist."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS queue_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                local_id TEXT UNIQUE NOT NULL,
                kind TEXT NOT NULL,
                payload TEXT NOT NULL,
                status TEXT DEFAULT 'pending',
                claim_id TEXT DEFAULT NULL,
                created_online INTEGER DEFAULT 0,
                attempts INTEGER DEFAULT 0,
                last_error TEXT DEFAULT NULL,
                created_at TEXT NOT NULL,
                synced_at TEXT DEFAULT NULL
            )
        ''')
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_queue_records_status ON queue_records(status)"
        )

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS kiosk_activity_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_type TEXT NOT NULL,
                status TEXT DEFAULT 'pending',
                details TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        conn.commit()
        conn.close()
        logger.info(f"SQLite database initialized at: {self.db_path}")

    def _count_unsynced(self) -> int:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "SELECT COUNT(*) FROM queue_records WHERE status != ?", (STATUS_SYNCED,)
            )
            return cursor.fetchone()[0]
        finally:
            conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> QueueRecord:
        return QueueRecord(
            local_id=row['local_id'],
            kind=row['kind'],
            payload=json.loads(row['payload']),
            created_at=row['created_at'],
            synced=row['status'] == STATUS_SYNCED,
            created_online=bool(row['created_online']),
            attempts=row['attempts'],
            last_error=row['last_error'],
            synced_at=row['synced_at'],
        )

    # ==================== Queue ====================

    def enqueue(self, kind: str, payload: Dict, online: bool = False) -> Optional[QueueRecord]:
        """
        Append a completed payment or complaint to the queue.

        Args:
            kind: "payment" or "complaint"
            payload: Domain data for the record (must be JSON serializable)
            online: Connectivity observed by the caller at enqueue time

        Returns:
            The stored QueueRecord, or None if it could not be written
        """
        if kind not in RECORD_KINDS:
            raise ValueError(f"Unknown record kind: {kind}")

        record = QueueRecord(
            local_id=self.ids.local_id(),
            kind=kind,
            payload=dict(payload),
            created_at=utc_now_iso(),
            created_online=online,
        )

        conn = self._get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute('''
                INSERT INTO queue_records (local_id, kind, payload, status, created_online, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (
                record.local_id,
                record.kind,
                json.dumps(record.payload, sort_keys=True),
                STATUS_PENDING,
                int(online),
                record.created_at,
            ))
            conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            conn.rollback()
            logger.error(f"Failed to enqueue {kind} record: {e}")
            return None
        finally:
            conn.close()

        self._pending_count += 1
        logger.info(f"Queued {kind} record {record.local_id} (online={online})")
        self.log_activity(f"{kind}_queued", STATUS_PENDING, f"Record: {record.local_id}")
        return record

    def count(self) -> int:
        """Number of records not yet confirmed as synced."""
        return self._pending_count

    def claim_pending(self, limit: Optional[int] = None) -> Tuple[str, List[QueueRecord]]:
        """
        Atomically claim pending records for delivery.

        Claimed rows move to in_flight under a fresh claim id, so a second
        claim (nested or concurrent) never receives the same record.
        """
        claim_id = uuid.uuid4().hex
        conn = self._get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute('''
                UPDATE queue_records
                SET status = ?, claim_id = ?
                WHERE id IN (
                    SELECT id FROM queue_records
                    WHERE status = ?
                    ORDER BY id ASC
                    LIMIT ?
                )
            ''', (STATUS_IN_FLIGHT, claim_id, STATUS_PENDING, -1 if limit is None else limit))
            conn.commit()

            cursor.execute(
                "SELECT * FROM queue_records WHERE claim_id = ? ORDER BY id ASC", (claim_id,)
            )
            records = [self._row_to_record(row) for row in cursor.fetchall()]
        finally:
            conn.close()

        return claim_id, records

    def confirm(self, claim_id: str, local_ids: List[str]) -> int:
        """Mark claimed records as synced. Returns how many changed state."""
        if not local_ids:
            return 0

        conn = self._get_connection()
        cursor = conn.cursor()
        placeholders = ','.join('?' * len(local_ids))

        try:
            cursor.execute(f'''
                UPDATE queue_records
                SET status = ?, synced_at = ?, claim_id = NULL, last_error = NULL
                WHERE claim_id = ? AND status = ? AND local_id IN ({placeholders})
            ''', [STATUS_SYNCED, utc_now_iso(), claim_id, STATUS_IN_FLIGHT] + list(local_ids))
            conn.commit()
            changed = cursor.rowcount
        finally:
            conn.close()

        self._pending_count = max(0, self._pending_count - changed)
        if changed:
            logger.info(f"Marked {changed} records as synced")
        return changed

    def release(self, claim_id: str, local_ids: Optional[List[str]] = None,
                error: Optional[str] = None) -> int:
        """
        Return claimed records to pending.

        Passing an error counts a failed delivery attempt against each
        released record. Without local_ids the whole claim is released.
        """
        params: list = [STATUS_PENDING, 1 if error else 0, error, claim_id, STATUS_IN_FLIGHT]
        query = '''
            UPDATE queue_records
            SET status = ?, claim_id = NULL, attempts = attempts + ?, last_error = COALESCE(?, last_error)
            WHERE claim_id = ? AND status = ?
        '''
        if local_ids is not None:
            if not local_ids:
                return 0
            query += f" AND local_id IN ({','.join('?' * len(local_ids))})"
            params += list(local_ids)

        conn = self._get_connection()
        try:
            cursor = conn.execute(query, params)
            conn.commit()
            released = cursor.rowcount
        finally:
            conn.close()

        if released:
            logger.info(f"Released {released} records back to pending")
        return released

    def drain(self, callback: Callable[[QueueRecord], bool]) -> int:
        """
        Deliver every pending record through ``callback``.

        Records for which the callback returns truthy are marked synced;
        the rest go back to pending. Returns the number newly synced.
        A drain with nothing pending is a no-op.
        """
        claim_id, records = self.claim_pending()
        if not records:
            return 0

        delivered: List[str] = []
        try:
            for record in records:
                try:
                    if callback(record):
                        delivered.append(record.local_id)
                except Exception as e:
                    logger.error(f"Drain callback failed for {record.local_id}: {e}")
        finally:
            synced = self.confirm(claim_id, delivered)
            self.release(claim_id, error="delivery not confirmed")

        return synced

    def recover_in_flight(self) -> int:
        """Return rows left in_flight by an interrupted drain to pending."""
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "UPDATE queue_records SET status = ?, claim_id = NULL WHERE status = ?",
                (STATUS_PENDING, STATUS_IN_FLIGHT),
            )
            conn.commit()
            recovered = cursor.rowcount
        finally:
            conn.close()

        if recovered:
            logger.warning(f"Recovered {recovered} in-flight records to pending")
        return recovered

    def compact(self, older_than_sec: float = 0) -> int:
        """Delete synced records whose confirmation is older than the cutoff."""
        cutoff = utc_now_iso(datetime.now(timezone.utc) - timedelta(seconds=older_than_sec))
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "DELETE FROM queue_records WHERE status = ? AND synced_at <= ?",
                (STATUS_SYNCED, cutoff),
            )
            conn.commit()
            removed = cursor.rowcount
        finally:
            conn.close()

        if removed:
            logger.info(f"Compacted {removed} synced records")
        return removed

    def get_record(self, local_id: str) -> Optional[QueueRecord]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM queue_records WHERE local_id = ?", (local_id,)
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_record(row) if row else None

    def list_records(self, status: Optional[str] = None, limit: int = 50) -> List[QueueRecord]:
        conn = self._get_connection()
        try:
            if status:
                rows = conn.execute(
                    "SELECT * FROM queue_records WHERE status = ? ORDER BY id ASC LIMIT ?",
                    (status, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM queue_records ORDER BY id ASC LIMIT ?", (limit,)
                ).fetchall()
        finally:
            conn.close()
        return [self._row_to_record(row) for row in rows]

    # ==================== Activity Logging ====================

    def log_activity(self, event_type: str, status: str = 'pending', details: str = None):
        """Log a kiosk activity event."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute('''
            INSERT INTO kiosk_activity_logs (event_type, status, details)
            VALUES (?, ?, ?)
        ''', (event_type, status, details))

        conn.commit()
        conn.close()

    def get_recent_logs(self, limit: int = 50) -> List[Dict]:
        """Get recent activity logs, newest first."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute('''
            SELECT * FROM kiosk_activity_logs
            ORDER BY id DESC
            LIMIT ?
        ''', (limit,))

        logs = [dict(row) for row in cursor.fetchall()]
        conn.close()
        return logs

