"""Unit tests for the SQLite stores."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from found_money.errors import StatusTransitionError
from found_money.models.candidate import MatchScore, SourceType
from found_money.models.record import FormStatus, RecordStatus
from found_money.persistence import to_record
from found_money.store import (
    ClaimFormStore,
    MoneyFoundStore,
    ProfileStore,
    ScoreCacheStore,
    SearchRunRecord,
)

from conftest import make_candidate


@pytest.fixture
def store(temp_db) -> MoneyFoundStore:
    """MoneyFoundStore with temporary database."""
    return MoneyFoundStore(temp_db)


@pytest.fixture
def profiles(temp_db, profile) -> ProfileStore:
    """ProfileStore holding the default test profile."""
    profile_store = ProfileStore(temp_db)
    profile_store.upsert_profile(profile)
    return profile_store


def _record(source_id: str = "facebook-privacy-2024", user_id: str = "user-1", **kwargs):
    return to_record(user_id, make_candidate(source_id=source_id, score=80, **kwargs))


class TestMoneyFoundStoreUpsert:
    """Natural-key upsert."""

    def test_upsert_new_returns_true(self, store: MoneyFoundStore) -> None:
        assert store.upsert(_record()) is True

    def test_upsert_same_natural_key_does_not_duplicate(self, store: MoneyFoundStore) -> None:
        """Re-discovering an opportunity refreshes the existing row."""
        store.upsert(_record())
        assert store.upsert(_record(title="Updated title")) is False
        records = store.list_for_user("user-1")
        assert len(records) == 1

    def test_refresh_keeps_status_and_content_updates(self, store: MoneyFoundStore) -> None:
        record = _record(amount_text="$10")
        store.upsert(record)
        store.update_status(record.id, "user-1", RecordStatus.CLAIMED)
        store.upsert(_record(amount_text="$25"))
        refreshed = store.get(record.id)
        assert refreshed.status == RecordStatus.CLAIMED
        assert refreshed.amount_text == "$25"

    def test_same_source_id_different_users(self, store: MoneyFoundStore) -> None:
        assert store.upsert_many([_record(user_id="a"), _record(user_id="b")]) == 2
        assert store.count_for_user("a") == 1
        assert store.count_for_user("b") == 1

    def test_upsert_many_counts_only_new(self, store: MoneyFoundStore) -> None:
        store.upsert(_record("one"))
        assert store.upsert_many([_record("one"), _record("two"), _record("three")]) == 2


class TestMoneyFoundStoreQueries:
    def test_get_scoped_to_owner(self, store: MoneyFoundStore) -> None:
        record = _record()
        store.upsert(record)
        assert store.get(record.id, "user-1") is not None
        assert store.get(record.id, "someone-else") is None

    def test_get_nonexistent_returns_none(self, store: MoneyFoundStore) -> None:
        assert store.get("missing") is None

    def test_list_filters_by_status(self, store: MoneyFoundStore) -> None:
        first, second = _record("one"), _record("two")
        store.upsert_many([first, second])
        store.update_status(second.id, "user-1", RecordStatus.CLAIMED)
        assert [r.id for r in store.list_for_user("user-1", "claimed")] == [second.id]
        assert len(store.list_for_user("user-1", "unclaimed")) == 1

    def test_amount_and_metadata_round_trip(self, store: MoneyFoundStore) -> None:
        record = _record(amount_text="$127.43")
        store.upsert(record)
        loaded = store.get(record.id)
        assert loaded.amount_numeric == Decimal("127.43")
        assert loaded.metadata["payload"]["settlement_id"] == "facebook-privacy-2024"
        assert loaded.source_type == SourceType.CATALOG


class TestStatusTransitions:
    """Status only moves forward."""

    def test_forward_transitions(self, store: MoneyFoundStore) -> None:
        record = _record()
        store.upsert(record)
        assert store.update_status(record.id, "user-1", RecordStatus.CLAIMED).status == RecordStatus.CLAIMED
        received = store.update_status(record.id, "user-1", RecordStatus.RECEIVED, Decimal("42.50"))
        assert received.status == RecordStatus.RECEIVED
        assert store.get(record.id).received_amount == Decimal("42.50")

    def test_skip_straight_to_received(self, store: MoneyFoundStore) -> None:
        record = _record()
        store.upsert(record)
        assert store.update_status(record.id, "user-1", RecordStatus.RECEIVED).status == RecordStatus.RECEIVED

    def test_regression_raises(self, store: MoneyFoundStore) -> None:
        record = _record()
        store.upsert(record)
        store.update_status(record.id, "user-1", RecordStatus.RECEIVED)
        with pytest.raises(StatusTransitionError):
            store.update_status(record.id, "user-1", RecordStatus.UNCLAIMED)
        assert store.get(record.id).status == RecordStatus.RECEIVED

    def test_received_amount_requires_received(self, store: MoneyFoundStore) -> None:
        record = _record()
        store.upsert(record)
        with pytest.raises(StatusTransitionError):
            store.update_status(record.id, "user-1", RecordStatus.CLAIMED, Decimal("5"))

    def test_same_status_is_allowed(self, store: MoneyFoundStore) -> None:
        record = _record()
        store.upsert(record)
        store.update_status(record.id, "user-1", RecordStatus.RECEIVED, Decimal("9"))
        again = store.update_status(record.id, "user-1", RecordStatus.RECEIVED)
        assert again.received_amount == Decimal("9")

    def test_zero_received_amount_is_recorded(self, store: MoneyFoundStore) -> None:
        record = _record()
        store.upsert(record)
        store.update_status(record.id, "user-1", RecordStatus.RECEIVED, Decimal("9"))
        corrected = store.update_status(record.id, "user-1", RecordStatus.RECEIVED, Decimal("0"))
        assert corrected.received_amount == Decimal("0")
        assert store.get(record.id).received_amount == Decimal("0")

    def test_unknown_record_returns_none(self, store: MoneyFoundStore) -> None:
        assert store.update_status("missing", "user-1", RecordStatus.CLAIMED) is None


class TestSearchRuns:
    """Tests for run tracking."""

    def test_start_run_returns_record(self, store: MoneyFoundStore) -> None:
        run = store.start_run("user-1", "catalog_settlement")
        assert isinstance(run, SearchRunRecord)
        assert run.id > 0
        assert run.status == "running"

    def test_finish_run_updates_record(self, store: MoneyFoundStore) -> None:
        run = store.start_run("user-1", "property_record")
        store.finish_run(run.id, items_found=4, items_new=3)
        with store._connection() as conn:
            row = conn.execute("SELECT * FROM search_runs WHERE id = ?", (run.id,)).fetchone()
        assert row["status"] == "completed"
        assert row["items_found"] == 4
        assert row["items_new"] == 3
        assert row["finished_at"] is not None


class TestProfileStore:
    def test_round_trip_with_addresses(self, profiles: ProfileStore, profile) -> None:
        loaded = profiles.get_profile("user-1")
        assert loaded.full_name() == "Jane Doe"
        assert loaded.states() == ["CA", "NY"]
        assert loaded.interests == profile.interests
        assert loaded.email_connected is False

    def test_upsert_replaces_addresses(self, profiles: ProfileStore, profile) -> None:
        profiles.upsert_profile(profile.model_copy(update={"addresses": profile.addresses[:1]}))
        assert profiles.get_profile("user-1").states() == ["CA"]

    def test_unknown_profile(self, profiles: ProfileStore) -> None:
        assert profiles.get_profile("nobody") is None

    def test_email_tokens(self, profiles: ProfileStore) -> None:
        assert profiles.get_email_tokens("user-1") is None
        assert profiles.set_email_tokens("user-1", "access-1", "refresh-1") is True
        # A refresh without a new refresh token keeps the old one
        profiles.set_email_tokens("user-1", "access-2")
        tokens = profiles.get_email_tokens("user-1")
        assert tokens.access_token == "access-2"
        assert tokens.refresh_token == "refresh-1"
        assert profiles.get_profile("user-1").email_connected is True

    def test_email_tokens_unknown_user(self, profiles: ProfileStore) -> None:
        assert profiles.set_email_tokens("nobody", "token") is False

    def test_clear_email_tokens(self, profiles: ProfileStore) -> None:
        profiles.set_email_tokens("user-1", "access", "refresh")
        profiles.clear_email_tokens("user-1")
        assert profiles.get_email_tokens("user-1") is None

    def test_subscription_update_keeps_unset_fields(self, profiles: ProfileStore) -> None:
        expires = datetime(2027, 1, 1, tzinfo=timezone.utc)
        profiles.update_subscription("user-1", status="active", tier="monthly", expires_at=expires)
        profiles.update_subscription("user-1", status="cancelled")
        loaded = profiles.get_profile("user-1")
        assert loaded.subscription_status == "cancelled"
        assert loaded.subscription_tier == "monthly"

    def test_subscription_events_logged(self, profiles: ProfileStore) -> None:
        profiles.record_subscription_event("user-1", "RENEWAL", {"type": "RENEWAL"})
        events = profiles.list_subscription_events("user-1")
        assert [e["event_type"] for e in events] == ["RENEWAL"]
        assert events[0]["payload"] == {"type": "RENEWAL"}


class TestClaimFormStore:
    def test_save_draft_then_complete(self, temp_db) -> None:
        forms = ClaimFormStore(temp_db)
        draft = forms.save("user-1", "rec-1", {"first_name": "Jane"})
        assert draft.status == FormStatus.DRAFT
        assert draft.id > 0

        completed = forms.save("user-1", "rec-1", {"first_name": "Jane", "city": "LA"}, document_ref="user-1/x.pdf")
        assert completed.id == draft.id
        assert completed.status == FormStatus.COMPLETED
        assert completed.form_data["city"] == "LA"

    def test_completed_stays_completed(self, temp_db) -> None:
        forms = ClaimFormStore(temp_db)
        forms.save("user-1", "rec-1", {"a": 1}, document_ref="user-1/x.pdf")
        again = forms.save("user-1", "rec-1", {"a": 2})
        assert again.status == FormStatus.COMPLETED
        assert again.document_ref == "user-1/x.pdf"

    def test_get_scoped_to_owner(self, temp_db) -> None:
        forms = ClaimFormStore(temp_db)
        draft = forms.save("user-1", "rec-1", {"a": 1})
        assert forms.get(draft.id, "user-1") is not None
        assert forms.get(draft.id, "user-2") is None


class TestScoreCacheStore:
    def test_keyed_by_scorer(self, temp_db) -> None:
        cache = ScoreCacheStore(temp_db)
        cache.put("p", "c", MatchScore(score=40), scorer="heuristic")
        assert cache.get("p", "c", scorer="heuristic").score == 40
        assert cache.get("p", "c", scorer="llm") is None
        cache.put("p", "c", MatchScore(score=90), scorer="llm")
        assert cache.count() == 2
