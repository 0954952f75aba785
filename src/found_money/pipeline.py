"""Pipeline orchestration: search all sources concurrently → score → threshold → persist."""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from found_money.amounts import amount_contribution
from found_money.config import Settings
from found_money.errors import EmailNotConnectedError
from found_money.llm import StructuredLLM
from found_money.models.candidate import OpportunityCandidate, SourceType
from found_money.models.profile import UserProfile
from found_money.persistence import persist_candidates
from found_money.scoring import MatchScorer, apply_threshold, build_scorer, score_candidates, sort_candidates
from found_money.sources.base import BaseSource
from found_money.sources.email import EmailClassifier, EmailSource, GmailClient
from found_money.sources.property import HttpJurisdictionLookup
from found_money.sources.registry import SourceRegistry
from found_money.store.profile_store import ProfileStore
from found_money.store.score_cache import ScoreCacheStore
from found_money.store.sqlite_store import MoneyFoundStore

logger = logging.getLogger(__name__)

# Contribution to the estimated total when a source's amount cannot be parsed
AMOUNT_FLOORS: dict[SourceType, Decimal] = {
    SourceType.CATALOG: Decimal("0"),
    SourceType.PROPERTY: Decimal("100"),
    SourceType.EMAIL: Decimal("50"),
}

# Sources whose candidates go through the match scorer; email carries classifier confidence
SCORED_SOURCES = {SourceType.CATALOG, SourceType.PROPERTY}


class PartialError(BaseModel):
    """A source-level failure that did not abort the aggregation."""

    source: SourceType
    stage: str = Field(..., description="search | persist")
    message: str


class AggregationResult(BaseModel):
    class_actions: list[OpportunityCandidate] = Field(default_factory=list)
    unclaimed_property: list[OpportunityCandidate] = Field(default_factory=list)
    email_opportunities: list[OpportunityCandidate] = Field(default_factory=list)
    total_found: int = 0
    estimated_value: Decimal = Decimal("0")
    partial_errors: list[PartialError] = Field(default_factory=list)
    source_status: dict[str, str] = Field(default_factory=dict)
    persisted: dict[str, int] = Field(default_factory=dict, description="New records per source")
    emails_scanned: Optional[int] = None

    def candidates_for(self, source: SourceType) -> list[OpportunityCandidate]:
        if source == SourceType.CATALOG:
            return self.class_actions
        if source == SourceType.PROPERTY:
            return self.unclaimed_property
        if source == SourceType.EMAIL:
            return self.email_opportunities
        raise ValueError(f"Unhandled source: {source}")

    def summary_message(self) -> str:
        message = f"Found {self.total_found} opportunities worth approximately ${self.estimated_value:,.2f}"
        if self.partial_errors:
            issues = len(self.partial_errors)
            message += f" ({issues} source issue{'s' if issues != 1 else ''})"
        return message


def estimate_value(candidates: list[OpportunityCandidate]) -> Decimal:
    return sum(
        (amount_contribution(c.amount, AMOUNT_FLOORS[c.source_type]) for c in candidates),
        Decimal("0"),
    )


class Aggregator:
    """
    Runs the discovery sources for one user. A failure in any one source
    (search, scoring or persistence) is reported in partial_errors and
    never fails the whole run.
    """

    def __init__(
        self,
        sources: dict[SourceType, BaseSource],
        scorer: MatchScorer,
        store: Optional[MoneyFoundStore] = None,
    ):
        self.sources = sources
        self.scorer = scorer
        self.store = store

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: Optional[MoneyFoundStore] = None,
        profile_store: Optional[ProfileStore] = None,
    ) -> "Aggregator":
        """Wire the default sources, scorer and stores from configuration."""
        db_path = settings.database_path
        store = store or MoneyFoundStore(db_path)
        profile_store = profile_store or ProfileStore(db_path)
        llm = StructuredLLM.from_settings(settings)

        lookup = HttpJurisdictionLookup(settings.property_lookup_url) if settings.property_lookup_url else None
        source_kwargs: dict[SourceType, dict] = {
            SourceType.CATALOG: {"catalog_path": settings.catalog_path},
            SourceType.PROPERTY: {"lookup": lookup},
            SourceType.EMAIL: {
                "profile_store": profile_store,
                "gmail": GmailClient.from_settings(settings),
                "classifier": EmailClassifier(llm) if llm else None,
            },
        }
        sources = {s: SourceRegistry.get(s, **kwargs) for s, kwargs in source_kwargs.items()}
        cache = ScoreCacheStore(db_path) if settings.score_cache_enabled else None
        return cls(sources, build_scorer(settings, cache_store=cache, llm=llm), store)

    async def search_all(self, profile: UserProfile) -> AggregationResult:
        return await self._run(profile, list(self.sources))

    async def search_catalog(self, profile: UserProfile) -> AggregationResult:
        return await self._run(profile, [SourceType.CATALOG])

    async def search_property(self, profile: UserProfile) -> AggregationResult:
        return await self._run(profile, [SourceType.PROPERTY])

    async def scan_email(self, profile: UserProfile) -> AggregationResult:
        return await self._run(profile, [SourceType.EMAIL])

    async def _run(self, profile: UserProfile, source_types: list[SourceType]) -> AggregationResult:
        result = AggregationResult()
        gathered = await asyncio.gather(*(self._search(profile, s, result) for s in source_types))

        for source_type, candidates in zip(source_types, gathered):
            if source_type in SCORED_SOURCES:
                ranked = await score_candidates(profile, candidates, self.scorer)
            else:
                ranked = sort_candidates(apply_threshold(candidates))
            result.candidates_for(source_type).extend(ranked)

        survivors = result.class_actions + result.unclaimed_property + result.email_opportunities
        result.total_found = len(survivors)
        result.estimated_value = estimate_value(survivors)

        if self.store is not None:
            for source_type in source_types:
                self._persist(profile.user_id, source_type, result)

        logger.info("%s for %s", result.summary_message(), profile.user_id)
        return result

    async def _search(
        self,
        profile: UserProfile,
        source_type: SourceType,
        result: AggregationResult,
    ) -> list[OpportunityCandidate]:
        source = self.sources.get(source_type)
        if source is None:
            result.source_status[source_type.value] = "disabled"
            return []
        try:
            if isinstance(source, EmailSource):
                scan = await source.scan(profile)
                result.emails_scanned = scan.emails_scanned
                candidates = scan.candidates
            else:
                candidates = await source.search(profile)
        except EmailNotConnectedError as e:
            logger.info("Email source skipped for %s: %s", profile.user_id, e)
            result.source_status[source_type.value] = "not_connected"
            return []
        except Exception as e:
            logger.warning("Source %s failed for %s: %s", source_type.value, profile.user_id, e)
            result.source_status[source_type.value] = "error"
            result.partial_errors.append(PartialError(source=source_type, stage="search", message=str(e)))
            return []
        result.source_status[source_type.value] = "ok"
        return candidates

    def _persist(self, user_id: str, source_type: SourceType, result: AggregationResult) -> None:
        candidates = result.candidates_for(source_type)
        if not candidates:
            return
        try:
            result.persisted[source_type.value] = persist_candidates(self.store, user_id, source_type, candidates)
        except Exception as e:
            logger.error("Persisting %s results failed for %s: %s", source_type.value, user_id, e)
            result.partial_errors.append(PartialError(source=source_type, stage="persist", message=str(e)))
