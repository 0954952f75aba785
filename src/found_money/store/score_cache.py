"""Score cache keyed by (profile hash, candidate hash)."""

from datetime import datetime, timezone
from typing import Optional

from found_money.models.candidate import MatchScore

from .sqlite_store import SQLiteStore


class ScoreCacheStore(SQLiteStore):
    """SQLite store for previously computed match scores."""

    def get(self, profile_hash: str, candidate_hash: str, *, scorer: str) -> Optional[MatchScore]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT result FROM score_cache WHERE profile_hash = ? AND candidate_hash = ? AND scorer = ?",
                (profile_hash, candidate_hash, scorer),
            ).fetchone()
        return MatchScore.model_validate_json(row["result"]) if row else None

    def put(self, profile_hash: str, candidate_hash: str, result: MatchScore, *, scorer: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO score_cache (profile_hash, candidate_hash, scorer, result, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (profile_hash, candidate_hash, scorer, result.model_dump_json(), now),
            )
            conn.commit()

    def count(self) -> int:
        with self._connection() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM score_cache").fetchone()[0])
