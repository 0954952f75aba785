"""Claim form drafts: zero or one per money-found record."""

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Optional

from found_money.models.record import ClaimFormDraft, FormStatus

from .sqlite_store import SQLiteStore


class ClaimFormStore(SQLiteStore):
    """SQLite store for claim form drafts, keyed by (user_id, money_found_id)."""

    def save(
        self,
        user_id: str,
        money_found_id: str,
        form_data: dict[str, Any],
        document_ref: Optional[str] = None,
    ) -> ClaimFormDraft:
        """Upsert the draft. A document reference completes it."""
        now = datetime.now(timezone.utc).isoformat()
        status = FormStatus.COMPLETED if document_ref else FormStatus.DRAFT
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO claim_forms (user_id, money_found_id, form_data, document_ref, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, money_found_id) DO UPDATE SET
                    form_data = excluded.form_data,
                    document_ref = COALESCE(excluded.document_ref, document_ref),
                    status = CASE WHEN status = 'completed' THEN 'completed' ELSE excluded.status END,
                    updated_at = excluded.updated_at
                """,
                (user_id, money_found_id, json.dumps(form_data, default=str), document_ref, status.value, now, now),
            )
            conn.commit()
        draft = self.get_for_record(user_id, money_found_id)
        assert draft is not None
        return draft

    def get(self, form_id: int, user_id: str) -> Optional[ClaimFormDraft]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM claim_forms WHERE id = ? AND user_id = ?", (form_id, user_id)
            ).fetchone()
        return self._row_to_draft(row) if row else None

    def get_for_record(self, user_id: str, money_found_id: str) -> Optional[ClaimFormDraft]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM claim_forms WHERE user_id = ? AND money_found_id = ?",
                (user_id, money_found_id),
            ).fetchone()
        return self._row_to_draft(row) if row else None

    def _row_to_draft(self, row: sqlite3.Row) -> ClaimFormDraft:
        return ClaimFormDraft(
            id=row["id"],
            user_id=row["user_id"],
            money_found_id=row["money_found_id"],
            form_data=json.loads(row["form_data"]),
            document_ref=row["document_ref"],
            status=FormStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
