"""SQLite-backed money-found store with natural-key upserts and search-run tracking."""

import json
import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Optional

from found_money.errors import StatusTransitionError
from found_money.models.record import MoneyFoundRecord, RecordStatus


class SQLiteStore:
    """Connection and schema handling shared by the stores in this package."""

    def __init__(self, db_path: str | Path = "found_money.db"):
        self._db_path = Path(db_path)
        self._ensure_schema()

    def _connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        schema_path = Path(__file__).parent / "schema.sql"
        with self._connection() as conn:
            conn.executescript(schema_path.read_text())

    def ping(self) -> None:
        """Raise sqlite3.Error when the database is unreachable."""
        with self._connection() as conn:
            conn.execute("SELECT 1").fetchone()


class SearchRunRecord:
    """Record of one source search for one user."""

    def __init__(
        self,
        id: int,
        user_id: str,
        source: str,
        started_at: datetime,
        finished_at: Optional[datetime],
        status: str,
        items_found: int,
        items_new: int,
        error_message: Optional[str] = None,
    ):
        self.id = id
        self.user_id = user_id
        self.source = source
        self.started_at = started_at
        self.finished_at = finished_at
        self.status = status
        self.items_found = items_found
        self.items_new = items_new
        self.error_message = error_message


class MoneyFoundStore(SQLiteStore):
    """
    SQLite store for money-found records.
    Uses (user_id, source_type, source_id) as the natural key: re-discovering an
    opportunity refreshes its content but keeps the user's claim status.
    """

    def _serialize(self, record: MoneyFoundRecord) -> str:
        return json.dumps(record.model_dump(mode="json"), default=str)

    def _deserialize(self, row: sqlite3.Row) -> MoneyFoundRecord:
        return MoneyFoundRecord.model_validate(json.loads(row["data"]))

    def _upsert_row(self, conn: sqlite3.Connection, record: MoneyFoundRecord, now: str) -> bool:
        existing = conn.execute(
            "SELECT data FROM money_found WHERE user_id = ? AND source_type = ? AND source_id = ?",
            (record.user_id, record.source_type.value, record.source_id),
        ).fetchone()
        if existing:
            prior = MoneyFoundRecord.model_validate(json.loads(existing["data"]))
            merged = record.model_copy(
                update={
                    "id": prior.id,
                    "status": prior.status,
                    "received_amount": prior.received_amount,
                    "created_at": prior.created_at,
                    "updated_at": datetime.fromisoformat(now),
                }
            )
            conn.execute(
                "UPDATE money_found SET data = ?, updated_at = ? WHERE id = ?",
                (self._serialize(merged), now, prior.id),
            )
            return False
        conn.execute(
            """
            INSERT INTO money_found (id, user_id, source_type, source_id, status, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.user_id,
                record.source_type.value,
                record.source_id,
                record.status.value,
                self._serialize(record),
                now,
                now,
            ),
        )
        return True

    def upsert(self, record: MoneyFoundRecord) -> bool:
        """Insert or refresh one record. Returns True when it was new."""
        return self.upsert_many([record]) == 1

    def upsert_many(self, records: list[MoneyFoundRecord]) -> int:
        """Write a batch in one transaction. Returns the number of new records."""
        now = datetime.now(timezone.utc).isoformat()
        new = 0
        with self._connection() as conn:
            for record in records:
                if self._upsert_row(conn, record, now):
                    new += 1
            conn.commit()
        return new

    def get(self, record_id: str, user_id: Optional[str] = None) -> Optional[MoneyFoundRecord]:
        """Get single record by id, optionally scoped to its owner."""
        query = "SELECT * FROM money_found WHERE id = ?"
        params: tuple = (record_id,)
        if user_id is not None:
            query += " AND user_id = ?"
            params = (record_id, user_id)
        with self._connection() as conn:
            row = conn.execute(query, params).fetchone()
        return self._deserialize(row) if row else None

    def list_for_user(self, user_id: str, status: Optional[str] = None) -> list[MoneyFoundRecord]:
        """Return a user's records, newest first."""
        query = "SELECT * FROM money_found WHERE user_id = ?"
        params: tuple = (user_id,)
        if status:
            query += " AND status = ?"
            params = (user_id, status)
        with self._connection() as conn:
            rows = conn.execute(query + " ORDER BY created_at DESC", params).fetchall()
        return [self._deserialize(r) for r in rows]

    def count_for_user(self, user_id: str) -> int:
        with self._connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM money_found WHERE user_id = ?", (user_id,)).fetchone()
        return int(row["n"])

    def update_status(
        self,
        record_id: str,
        user_id: str,
        status: RecordStatus,
        received_amount: Optional[Decimal] = None,
    ) -> Optional[MoneyFoundRecord]:
        """
        Move a record forward through unclaimed -> claimed -> received.
        Returns None for unknown records; raises StatusTransitionError on regression.
        """
        record = self.get(record_id, user_id)
        if record is None:
            return None
        if status.rank < record.status.rank:
            raise StatusTransitionError(f"Cannot move record from {record.status.value} to {status.value}")
        if received_amount is not None and status != RecordStatus.RECEIVED:
            raise StatusTransitionError("received_amount is only valid with status 'received'")

        now = datetime.now(timezone.utc)
        updated = record.model_copy(
            update={
                "status": status,
                "received_amount": (
                    (received_amount if received_amount is not None else record.received_amount)
                    if status == RecordStatus.RECEIVED
                    else None
                ),
                "updated_at": now,
            }
        )
        with self._connection() as conn:
            conn.execute(
                "UPDATE money_found SET status = ?, data = ?, updated_at = ? WHERE id = ?",
                (status.value, self._serialize(updated), now.isoformat(), record_id),
            )
            conn.commit()
        return updated

    def start_run(self, user_id: str, source: str) -> SearchRunRecord:
        """Record start of a source search. Returns SearchRunRecord with id."""
        now = datetime.now(timezone.utc).isoformat()
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT INTO search_runs (user_id, source, started_at, status) VALUES (?, ?, ?, 'running')",
                (user_id, source, now),
            )
            conn.commit()
            run_id = cursor.lastrowid
        return SearchRunRecord(
            id=run_id or 0,
            user_id=user_id,
            source=source,
            started_at=datetime.fromisoformat(now),
            finished_at=None,
            status="running",
            items_found=0,
            items_new=0,
        )

    def finish_run(
        self,
        run_id: int,
        items_found: int,
        items_new: int,
        status: str = "completed",
        error_message: Optional[str] = None,
    ) -> None:
        """Record completion of a source search."""
        now = datetime.now(timezone.utc).isoformat()
        with self._connection() as conn:
            conn.execute(
                """
                UPDATE search_runs SET finished_at = ?, status = ?, items_found = ?, items_new = ?, error_message = ?
                WHERE id = ?
                """,
                (now, status, items_found, items_new, error_message, run_id),
            )
            conn.commit()
