"""Audit Ledger - Append-only, hash-chained governance log."""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from typing import Iterable, Optional, List

from vaultgate.errors import InternalError
from vaultgate.ledger.models import (
    ChainValidationResult,
    EventType,
    LedgerEntry,
    POLICY_EVENTS,
)


logger = logging.getLogger(__name__)


class AuditLedger:
    """
    Append-only Audit Ledger with hash-chaining.

    Records every policy mutation and every transaction approval so that the
    history screens can show who changed what, and when. Entries are never
    updated or deleted; validate_chain() detects tampering.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize the audit ledger.

        Args:
            db_path: Path to SQLite database. If None, uses in-memory DB.
        """
        self.db_path = db_path or ":memory:"
        self._lock = threading.RLock()

        # In-memory databases only live as long as their connection
        self._conn: Optional[sqlite3.Connection] = None
        if self.db_path == ":memory:":
            self._conn = sqlite3.connect(":memory:", check_same_thread=False)

        self._init_db()

        self._last_hash: str = self._get_last_hash()

        logger.info(f"Audit Ledger initialized: {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn:
            return self._conn
        return sqlite3.connect(self.db_path)

    def _close_connection(self, conn: sqlite3.Connection) -> None:
        if conn != self._conn:
            conn.close()

    def log_event(
        self,
        event_type: EventType,
        payload: dict,
        actor: Optional[str] = None,
        policy_id: Optional[int] = None,
        transaction_id: Optional[int] = None,
    ) -> LedgerEntry:
        """
        Append an event to the ledger.

        Args:
            event_type: Type of event
            payload: JSON-serializable event data
            actor: Display identity that triggered the event
            policy_id: Related policy
            transaction_id: Related transaction

        Returns:
            The created LedgerEntry
        """
        return self.log_events([{
            "event_type": event_type,
            "payload": payload,
            "actor": actor,
            "policy_id": policy_id,
            "transaction_id": transaction_id,
        }])[0]

    def log_events(self, events: List[dict]) -> List[LedgerEntry]:
        """
        Append several events as one unit: either all are stored or none.

        Args:
            events: Keyword arguments for LedgerEntry, one dict per event,
                in chain order

        Returns:
            The created entries

        Raises:
            InternalError: If the write fails; the chain head is unchanged
        """
        with self._lock:
            entries: List[LedgerEntry] = []
            previous_hash = self._last_hash
            for event in events:
                entry = LedgerEntry(previous_hash=previous_hash, **event)
                entries.append(entry)
                previous_hash = entry.hash
            self._store_entries(entries)
            self._last_hash = previous_hash

        for entry in entries:
            logger.debug(f"Ledger append: {entry.event_type.value} [{entry.entry_id}]")
        return entries

    def get_entry(self, entry_id: str) -> Optional[LedgerEntry]:
        rows = self._query("SELECT * FROM ledger WHERE entry_id = ?", (entry_id,))
        return self._row_to_entry(rows[0]) if rows else None

    def get_entries_by_policy(self, policy_id: int) -> List[LedgerEntry]:
        """All entries for a policy, oldest first."""
        rows = self._query(
            "SELECT * FROM ledger WHERE policy_id = ? ORDER BY rowid",
            (policy_id,),
        )
        return [self._row_to_entry(row) for row in rows]

    def get_entries_by_transaction(self, transaction_id: int) -> List[LedgerEntry]:
        """All entries for a transaction, oldest first."""
        rows = self._query(
            "SELECT * FROM ledger WHERE transaction_id = ? ORDER BY rowid",
            (transaction_id,),
        )
        return [self._row_to_entry(row) for row in rows]

    def get_recent_entries(
        self,
        limit: int = 20,
        event_types: Optional[Iterable[EventType]] = None,
    ) -> List[LedgerEntry]:
        """Most recent entries first, optionally restricted to some event types."""
        if event_types is None:
            rows = self._query(
                "SELECT * FROM ledger ORDER BY rowid DESC LIMIT ?", (limit,)
            )
        else:
            types = [t.value for t in event_types]
            placeholders = ", ".join("?" for _ in types)
            rows = self._query(
                f"SELECT * FROM ledger WHERE event_type IN ({placeholders}) "
                f"ORDER BY rowid DESC LIMIT ?",
                (*types, limit),
            )
        return [self._row_to_entry(row) for row in rows]

    def get_policy_history(self, limit: int = 50) -> List[LedgerEntry]:
        """Policy governance events, most recent first."""
        return self.get_recent_entries(limit, event_types=POLICY_EVENTS)

    def validate_chain(self) -> ChainValidationResult:
        """
        Validate the entire hash chain.

        Checks that each entry's stored hash matches its content and that each
        previous_hash matches the hash of the entry before it.
        """
        rows = self._query("SELECT * FROM ledger ORDER BY rowid ASC")

        if not rows:
            return ChainValidationResult(is_valid=True, total_entries=0)

        entries = [self._row_to_entry(row) for row in rows]

        if entries[0].previous_hash != "genesis":
            return ChainValidationResult(
                is_valid=False,
                total_entries=len(entries),
                broken_at=0,
                error_message="First entry doesn't have genesis hash",
            )

        for i, entry in enumerate(entries):
            if entry.hash != entry.compute_hash():
                return ChainValidationResult(
                    is_valid=False,
                    total_entries=len(entries),
                    broken_at=i,
                    error_message=f"Entry {i} content does not match its hash",
                )
            if i and entry.previous_hash != entries[i - 1].hash:
                return ChainValidationResult(
                    is_valid=False,
                    total_entries=len(entries),
                    broken_at=i,
                    error_message=(
                        f"Chain broken at entry {i}: expected "
                        f"{entries[i - 1].hash}, got {entry.previous_hash}"
                    ),
                )

        logger.info(f"Chain validation passed: {len(entries)} entries")
        return ChainValidationResult(is_valid=True, total_entries=len(entries))

    def get_entry_count(self) -> int:
        return self._query("SELECT COUNT(*) FROM ledger")[0][0]

    def _query(self, sql: str, params: tuple = ()) -> list:
        with self._lock:
            conn = self._get_connection()
            try:
                cursor = conn.cursor()
                cursor.execute(sql, params)
                return cursor.fetchall()
            except sqlite3.Error as e:
                logger.error(f"Ledger query failed: {e}")
                raise InternalError(f"Ledger query failed: {e}")
            finally:
                self._close_connection(conn)

    def _init_db(self) -> None:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS ledger (
                entry_id TEXT PRIMARY KEY,
                timestamp TEXT NOT NULL,
                event_type TEXT NOT NULL,
                payload TEXT NOT NULL,
                previous_hash TEXT NOT NULL,
                hash TEXT NOT NULL,
                actor TEXT,
                policy_id INTEGER,
                transaction_id INTEGER
            )
        """)

        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_event_type ON ledger(event_type)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_policy_id ON ledger(policy_id)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_transaction_id ON ledger(transaction_id)"
        )

        conn.commit()
        self._close_connection(conn)

    def _store_entries(self, entries: List[LedgerEntry]) -> None:
        conn = self._get_connection()
        try:
            conn.executemany(
                """INSERT INTO ledger
                   (entry_id, timestamp, event_type, payload, previous_hash, hash,
                    actor, policy_id, transaction_id)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        entry.entry_id,
                        entry.timestamp.isoformat(),
                        entry.event_type.value,
                        json.dumps(entry.payload),
                        entry.previous_hash,
                        entry.hash,
                        entry.actor,
                        entry.policy_id,
                        entry.transaction_id,
                    )
                    for entry in entries
                ],
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Ledger write failed: {e}")
            raise InternalError(f"Ledger write failed: {e}")
        finally:
            self._close_connection(conn)

    def _get_last_hash(self) -> str:
        rows = self._query("SELECT hash FROM ledger ORDER BY rowid DESC LIMIT 1")
        return rows[0][0] if rows else "genesis"

    def _row_to_entry(self, row: tuple) -> LedgerEntry:
        entry = LedgerEntry(
            entry_id=row[0],
            timestamp=datetime.fromisoformat(row[1]),
            event_type=EventType(row[2]),
            payload=json.loads(row[3]),
            previous_hash=row[4],
            actor=row[6],
            policy_id=row[7],
            transaction_id=row[8],
        )
        entry._cached_hash = row[5]  # Use stored hash
        return entry

    def close(self) -> None:
        """Close persistent connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
