"""Tests for the aggregation pipeline: isolation, totals and persistence."""

import asyncio
import sqlite3
from datetime import date
from decimal import Decimal

import pytest

from found_money.errors import UpstreamError
from found_money.models.candidate import MatchScore, SourceType
from found_money.models.profile import UserProfile
from found_money.pipeline import Aggregator, AggregationResult, PartialError, estimate_value
from found_money.scoring import HeuristicMatchScorer, MatchScorer
from found_money.sources.base import BaseSource
from found_money.sources.catalog import CatalogSource
from found_money.sources.email import EmailSource, GmailClient
from found_money.sources.property import PropertySource
from found_money.store import MoneyFoundStore, ProfileStore

from conftest import FakeLLM, make_candidate


class _StaticSource(BaseSource):
    """Returns fixed candidates, or raises the given error."""

    def __init__(self, source_type, candidates=None, error=None):
        self.source_type = source_type
        self.candidates = candidates or []
        self.error = error
        self.calls = 0

    async def search(self, profile):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.candidates)


class _ConstantScorer(MatchScorer):
    name = "constant"

    def __init__(self, score: int):
        self.value = score

    async def score(self, profile, candidate):
        return MatchScore(score=self.value, reasons=["constant"])


class _BrokenStore(MoneyFoundStore):
    def upsert_many(self, records):
        raise sqlite3.OperationalError("disk I/O error")


def _sources(overrides=None):
    sources = {
        SourceType.CATALOG: _StaticSource(
            SourceType.CATALOG,
            [make_candidate(source_id="fb", amount_text="$30-$200"), make_candidate(source_id="vz", amount_text="$100")],
        ),
        SourceType.PROPERTY: _StaticSource(
            SourceType.PROPERTY,
            [make_candidate(SourceType.PROPERTY, source_id="CA:1", company="Wells Fargo Bank", amount_text="$127.43")],
        ),
        SourceType.EMAIL: _StaticSource(
            SourceType.EMAIL,
            [make_candidate(SourceType.EMAIL, source_id="m1:acme", company="Acme", amount_text="$20", score=80)],
        ),
    }
    sources.update(overrides or {})
    return sources


class TestSearchAll:
    def test_all_sources_ok(self, profile) -> None:
        aggregator = Aggregator(_sources(), _ConstantScorer(60))
        result = asyncio.run(aggregator.search_all(profile))
        assert len(result.class_actions) == 2
        assert len(result.unclaimed_property) == 1
        assert len(result.email_opportunities) == 1
        assert result.total_found == 4
        # 200 + 100 + 127.43 + 20
        assert result.estimated_value == Decimal("447.43")
        assert result.partial_errors == []
        assert set(result.source_status.values()) == {"ok"}

    def test_failing_source_is_isolated(self, profile) -> None:
        """One source failing still returns the others, with the failure reported."""
        sources = _sources(
            {SourceType.PROPERTY: _StaticSource(SourceType.PROPERTY, error=UpstreamError("registry down", transient=True))}
        )
        result = asyncio.run(Aggregator(sources, _ConstantScorer(60)).search_all(profile))
        assert result.unclaimed_property == []
        assert len(result.class_actions) == 2
        assert result.partial_errors == [
            PartialError(source=SourceType.PROPERTY, stage="search", message="registry down")
        ]
        assert result.source_status[SourceType.PROPERTY.value] == "error"
        assert result.summary_message().endswith("(1 source issue)")

    def test_low_scores_discarded(self, profile) -> None:
        result = asyncio.run(Aggregator(_sources(), _ConstantScorer(30)).search_all(profile))
        assert result.class_actions == []
        assert result.unclaimed_property == []
        # Email keeps its classifier confidence
        assert len(result.email_opportunities) == 1

    def test_email_not_connected(self, profile, temp_db) -> None:
        """An unconnected mailbox is a status, not an error."""
        profiles = ProfileStore(temp_db)
        profiles.upsert_profile(profile)
        email = EmailSource(profiles, GmailClient(None, None, None), None)
        result = asyncio.run(Aggregator(_sources({SourceType.EMAIL: email}), _ConstantScorer(60)).search_all(profile))
        assert result.source_status[SourceType.EMAIL.value] == "not_connected"
        assert result.partial_errors == []
        assert result.email_opportunities == []
        assert result.emails_scanned is None

    def test_missing_source_is_disabled(self, profile) -> None:
        sources = _sources()
        del sources[SourceType.EMAIL]
        result = asyncio.run(Aggregator(sources, _ConstantScorer(60)).search_all(profile))
        assert result.source_status[SourceType.EMAIL.value] == "disabled"

    def test_single_source_entry_points(self, profile) -> None:
        sources = _sources()
        aggregator = Aggregator(sources, _ConstantScorer(60))
        result = asyncio.run(aggregator.search_property(profile))
        assert result.total_found == 1
        assert sources[SourceType.CATALOG].calls == 0
        assert sources[SourceType.EMAIL].calls == 0
        assert list(result.source_status) == [SourceType.PROPERTY.value]


class TestEstimatedValue:
    """Unparseable amounts count at the source's floor."""

    def test_floors_per_source(self) -> None:
        candidates = [
            make_candidate(SourceType.CATALOG, source_id="c", amount_text="Unknown", score=60),
            make_candidate(SourceType.PROPERTY, source_id="p", amount_text=None, score=60),
            make_candidate(SourceType.EMAIL, source_id="e", amount_text="Unknown", score=60),
        ]
        assert estimate_value(candidates) == Decimal("150")

    def test_ranges_count_upper_bound(self) -> None:
        assert estimate_value([make_candidate(amount_text="$5-$12", score=60)]) == Decimal("12")

    def test_summary_message(self) -> None:
        result = AggregationResult(total_found=3, estimated_value=Decimal("1234.5"))
        assert result.summary_message() == "Found 3 opportunities worth approximately $1,234.50"


class TestPersistence:
    def test_rerun_is_idempotent(self, profile, temp_db) -> None:
        store = MoneyFoundStore(temp_db)
        aggregator = Aggregator(_sources(), _ConstantScorer(60), store)
        first = asyncio.run(aggregator.search_all(profile))
        assert sum(first.persisted.values()) == 4
        assert store.count_for_user("user-1") == 4

        second = asyncio.run(aggregator.search_all(profile))
        assert sum(second.persisted.values()) == 0
        assert store.count_for_user("user-1") == 4

    def test_persist_failure_reported(self, profile, temp_db) -> None:
        """Results are still returned when the store fails."""
        aggregator = Aggregator(_sources(), _ConstantScorer(60), _BrokenStore(temp_db))
        result = asyncio.run(aggregator.search_all(profile))
        assert result.total_found == 4
        stages = {(e.source, e.stage) for e in result.partial_errors}
        assert stages == {
            (SourceType.CATALOG, "persist"),
            (SourceType.PROPERTY, "persist"),
            (SourceType.EMAIL, "persist"),
        }

    def test_no_store_skips_persistence(self, profile) -> None:
        result = asyncio.run(Aggregator(_sources(), _ConstantScorer(60)).search_all(profile))
        assert result.persisted == {}


class TestWithRealSources:
    def test_catalog_with_heuristic_scoring(self, profile) -> None:
        catalog = CatalogSource(today=lambda: date(2024, 1, 1))
        aggregator = Aggregator({SourceType.CATALOG: catalog}, HeuristicMatchScorer())
        result = asyncio.run(aggregator.search_catalog(profile))
        companies = " ".join(c.company for c in result.class_actions)
        assert "Facebook" in companies
        scores = [c.match_score for c in result.class_actions]
        assert scores == sorted(scores, reverse=True)
        assert all(s > 30 for s in scores)

    def test_from_settings_wiring(self, settings) -> None:
        aggregator = Aggregator.from_settings(settings)
        assert set(aggregator.sources) == {SourceType.CATALOG, SourceType.PROPERTY, SourceType.EMAIL}
        assert isinstance(aggregator.sources[SourceType.CATALOG], CatalogSource)
        assert isinstance(aggregator.sources[SourceType.PROPERTY], PropertySource)
        email = aggregator.sources[SourceType.EMAIL]
        assert isinstance(email, EmailSource)
        assert email.classifier is None
        assert aggregator.scorer.name == "cached-heuristic"
        assert aggregator.store is not None

    def test_scoring_failures_use_neutral_score(self, profile) -> None:
        from found_money.scoring import LLMMatchScorer

        llm = FakeLLM(UpstreamError("model down", transient=True))
        aggregator = Aggregator(_sources(), LLMMatchScorer(llm))
        result = asyncio.run(aggregator.search_all(profile))
        assert {c.match_score for c in result.class_actions + result.unclaimed_property} == {50}
        assert result.partial_errors == []


class TestAggregationProperties:
    """End-to-end guarantees of one aggregation run."""

    @pytest.mark.parametrize("failing", list(SourceType))
    def test_any_single_source_failure_is_partial(self, profile, failing: SourceType) -> None:
        sources = _sources({failing: _StaticSource(failing, error=RuntimeError(f"{failing.value} exploded"))})
        result = asyncio.run(Aggregator(sources, _ConstantScorer(60)).search_all(profile))
        assert result.candidates_for(failing) == []
        assert [e.source for e in result.partial_errors] == [failing]
        expected = {SourceType.CATALOG: 2, SourceType.PROPERTY: 3, SourceType.EMAIL: 3}
        assert result.total_found == expected[failing]

    def test_below_threshold_never_persisted(self, profile, temp_db) -> None:
        store = MoneyFoundStore(temp_db)
        aggregator = Aggregator(_sources(), _ConstantScorer(25), store)
        result = asyncio.run(aggregator.search_all(profile))
        assert result.total_found == 1
        stored = store.list_for_user("user-1")
        assert [r.source_type for r in stored] == [SourceType.EMAIL]

    def test_property_only_results(self, profile) -> None:
        """Two jurisdictions with hits, nothing from the catalog or the mailbox."""

        class _PerCandidateScorer(MatchScorer):
            name = "per-candidate"

            async def score(self, profile, candidate):
                return MatchScore(score=90 if candidate.source_type == SourceType.PROPERTY else 10)

        sources = _sources(
            {
                SourceType.PROPERTY: _StaticSource(
                    SourceType.PROPERTY,
                    [
                        make_candidate(SourceType.PROPERTY, source_id="CA:1", amount_text="$127.43", jurisdiction="CA"),
                        make_candidate(SourceType.PROPERTY, source_id="NY:1", amount_text="$342.17", jurisdiction="NY"),
                    ],
                ),
                SourceType.EMAIL: _StaticSource(SourceType.EMAIL, []),
            }
        )
        result = asyncio.run(Aggregator(sources, _PerCandidateScorer()).search_all(profile))
        assert result.total_found == 2
        assert result.class_actions == []
        assert result.email_opportunities == []
        assert [c.raw_source_id for c in result.unclaimed_property] == ["NY:1", "CA:1"]
        assert result.estimated_value == Decimal("469.60")

    def test_unnamed_profile_is_partial_for_search_all(self) -> None:
        """A nameless profile still gets catalog and email results; property reports the gap."""
        sources = _sources({SourceType.PROPERTY: PropertySource()})
        result = asyncio.run(Aggregator(sources, _ConstantScorer(60)).search_all(UserProfile(user_id="u2")))
        assert result.unclaimed_property == []
        assert len(result.class_actions) == 2
        assert result.partial_errors == [
            PartialError(
                source=SourceType.PROPERTY,
                stage="search",
                message="First and last name required for property search",
            )
        ]
