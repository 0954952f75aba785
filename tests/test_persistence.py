"""Tests for mapping candidates to records and persisting a source's results."""

import sqlite3
from decimal import Decimal

import pytest

from found_money.models.candidate import SourceType
from found_money.persistence import make_record_id, persist_candidates, to_record
from found_money.store import MoneyFoundStore

from conftest import make_candidate


class _BrokenStore(MoneyFoundStore):
    def upsert_many(self, records):
        raise sqlite3.OperationalError("database is locked")


class TestMakeRecordId:
    def test_deterministic(self) -> None:
        a = make_record_id("user-1", SourceType.CATALOG, "x")
        assert a == make_record_id("user-1", SourceType.CATALOG, "x")
        assert len(a) == 32

    def test_differs_per_part(self) -> None:
        base = make_record_id("user-1", SourceType.CATALOG, "x")
        assert base != make_record_id("user-2", SourceType.CATALOG, "x")
        assert base != make_record_id("user-1", SourceType.PROPERTY, "x")
        assert base != make_record_id("user-1", SourceType.CATALOG, "y")


class TestToRecord:
    """Per-source field mapping."""

    def test_catalog(self) -> None:
        candidate = make_candidate(score=72, eligibility="US Facebook users 2007-2022")
        record = to_record("user-1", candidate)
        assert record.company_name == "Meta (Facebook)"
        assert record.amount_numeric == Decimal("200")
        assert record.eligibility_requirements == "US Facebook users 2007-2022"
        assert record.claim_url == "https://example.com/claim"
        assert record.match_score == 72
        assert record.metadata["amount_range"] == {"low": "30", "high": "200"}

    def test_property(self) -> None:
        candidate = make_candidate(
            SourceType.PROPERTY,
            source_id="CA:CA-2024-00123",
            company="Wells Fargo Bank",
            amount_text="$127.43",
            score=90,
            claim_url="https://ucpi.sco.ca.gov/en/Property/SearchIndex?id=CA-2024-00123",
        )
        record = to_record("user-1", candidate)
        assert record.source_id == "CA:CA-2024-00123"
        assert record.eligibility_requirements == "Registered owner: JANE DOE"
        assert record.amount_numeric == Decimal("127.43")
        assert record.claim_url.endswith("id=CA-2024-00123")

    def test_email_with_unknown_amount(self) -> None:
        candidate = make_candidate(
            SourceType.EMAIL,
            source_id="msg-1:acme",
            company="Acme",
            amount_text="Unknown",
            score=70,
            action_required="Reply to support",
        )
        record = to_record("user-1", candidate)
        assert record.amount_numeric is None
        assert record.eligibility_requirements == "Reply to support"
        assert record.claim_url is None
        assert "amount_range" not in record.metadata


class TestPersistCandidates:
    def test_returns_new_count_and_records_run(self, temp_db) -> None:
        store = MoneyFoundStore(temp_db)
        candidates = [make_candidate(source_id="a", score=60), make_candidate(source_id="b", score=60)]
        assert persist_candidates(store, "user-1", SourceType.CATALOG, candidates) == 2
        assert persist_candidates(store, "user-1", SourceType.CATALOG, candidates) == 0
        assert store.count_for_user("user-1") == 2
        with store._connection() as conn:
            rows = conn.execute("SELECT status, items_found, items_new FROM search_runs ORDER BY id").fetchall()
        assert [(r["status"], r["items_found"], r["items_new"]) for r in rows] == [
            ("completed", 2, 2),
            ("completed", 2, 0),
        ]

    def test_store_failure_marks_run_failed_and_raises(self, temp_db) -> None:
        store = _BrokenStore(temp_db)
        with pytest.raises(sqlite3.OperationalError):
            persist_candidates(store, "user-1", SourceType.CATALOG, [make_candidate(score=60)])
        with store._connection() as conn:
            row = conn.execute("SELECT status, error_message FROM search_runs").fetchone()
        assert row["status"] == "failed"
        assert "locked" in row["error_message"]
