"""Profiles, addresses, email credentials and subscription state."""

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from found_money.models.profile import Address, UserProfile

from .sqlite_store import SQLiteStore


@dataclass
class EmailCredentials:
    """Tokens from the one-time email authorization grant."""

    access_token: str
    refresh_token: Optional[str]


class ProfileStore(SQLiteStore):
    """SQLite store for user profiles and per-user channel state."""

    def upsert_profile(self, profile: UserProfile) -> UserProfile:
        """Create or replace identity fields and the full address list."""
        now = datetime.now(timezone.utc).isoformat()
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO profiles (user_id, first_name, last_name, email, phone, date_of_birth, interests, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    first_name = excluded.first_name,
                    last_name = excluded.last_name,
                    email = excluded.email,
                    phone = excluded.phone,
                    date_of_birth = excluded.date_of_birth,
                    interests = excluded.interests,
                    updated_at = excluded.updated_at
                """,
                (
                    profile.user_id,
                    profile.first_name,
                    profile.last_name,
                    profile.email,
                    profile.phone,
                    profile.date_of_birth.isoformat() if profile.date_of_birth else None,
                    json.dumps(profile.interests),
                    now,
                    now,
                ),
            )
            conn.execute("DELETE FROM addresses WHERE user_id = ?", (profile.user_id,))
            conn.executemany(
                "INSERT INTO addresses (user_id, line1, city, state, postal_code) VALUES (?, ?, ?, ?, ?)",
                [(profile.user_id, a.line1, a.city, a.state, a.postal_code) for a in profile.addresses],
            )
            conn.commit()
        return self.get_profile(profile.user_id) or profile

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        """Profile with addresses, or None."""
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM profiles WHERE user_id = ?", (user_id,)).fetchone()
            if not row:
                return None
            addr_rows = conn.execute(
                "SELECT * FROM addresses WHERE user_id = ? ORDER BY id", (user_id,)
            ).fetchall()
        return self._row_to_profile(row, addr_rows)

    def _row_to_profile(self, row: sqlite3.Row, addr_rows: list[sqlite3.Row]) -> UserProfile:
        return UserProfile(
            user_id=row["user_id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            email=row["email"],
            phone=row["phone"],
            date_of_birth=row["date_of_birth"],
            interests=json.loads(row["interests"] or "[]"),
            addresses=[
                Address(line1=a["line1"], city=a["city"], state=a["state"], postal_code=a["postal_code"])
                for a in addr_rows
            ],
            email_connected=bool(row["email_access_token"]),
            subscription_status=row["subscription_status"],
            subscription_tier=row["subscription_tier"],
        )

    def set_email_tokens(self, user_id: str, access_token: str, refresh_token: Optional[str] = None) -> bool:
        """Store tokens; a missing refresh token keeps the previous one. Returns False for unknown users."""
        now = datetime.now(timezone.utc).isoformat()
        with self._connection() as conn:
            cursor = conn.execute(
                """
                UPDATE profiles SET
                    email_access_token = ?,
                    email_refresh_token = COALESCE(?, email_refresh_token),
                    updated_at = ?
                WHERE user_id = ?
                """,
                (access_token, refresh_token, now, user_id),
            )
            conn.commit()
        return cursor.rowcount > 0

    def get_email_tokens(self, user_id: str) -> Optional[EmailCredentials]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT email_access_token, email_refresh_token FROM profiles WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if not row or not row["email_access_token"]:
            return None
        return EmailCredentials(access_token=row["email_access_token"], refresh_token=row["email_refresh_token"])

    def clear_email_tokens(self, user_id: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._connection() as conn:
            conn.execute(
                "UPDATE profiles SET email_access_token = NULL, email_refresh_token = NULL, updated_at = ? WHERE user_id = ?",
                (now, user_id),
            )
            conn.commit()

    def update_subscription(
        self,
        user_id: str,
        *,
        status: Optional[str] = None,
        tier: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> bool:
        """Update the given subscription fields. Returns False for unknown users."""
        now = datetime.now(timezone.utc).isoformat()
        with self._connection() as conn:
            cursor = conn.execute(
                """
                UPDATE profiles SET
                    subscription_status = COALESCE(?, subscription_status),
                    subscription_tier = COALESCE(?, subscription_tier),
                    subscription_expires_at = COALESCE(?, subscription_expires_at),
                    updated_at = ?
                WHERE user_id = ?
                """,
                (status, tier, expires_at.isoformat() if expires_at else None, now, user_id),
            )
            conn.commit()
        return cursor.rowcount > 0

    def record_subscription_event(self, user_id: Optional[str], event_type: str, payload: dict[str, Any]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO subscription_events (user_id, event_type, payload, received_at) VALUES (?, ?, ?, ?)",
                (user_id, event_type, json.dumps(payload, default=str), now),
            )
            conn.commit()

    def list_subscription_events(self, user_id: str) -> list[dict[str, Any]]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT event_type, payload, received_at FROM subscription_events WHERE user_id = ? ORDER BY id",
                (user_id,),
            ).fetchall()
        return [
            {"event_type": r["event_type"], "payload": json.loads(r["payload"]), "received_at": r["received_at"]}
            for r in rows
        ]
