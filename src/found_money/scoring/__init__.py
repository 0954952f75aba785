"""Match scoring: pluggable scorers plus the threshold/sort step shared by all sources."""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from found_money.config import Settings
from found_money.llm import StructuredLLM
from found_money.models.candidate import MatchScore, OpportunityCandidate
from found_money.models.profile import UserProfile

from .base import MatchScorer
from .cache import CachingMatchScorer
from .heuristic import HeuristicMatchScorer
from .llm import LLMMatchScorer

if TYPE_CHECKING:
    from found_money.store.score_cache import ScoreCacheStore

logger = logging.getLogger(__name__)

# Candidates at or below this score are discarded
SCORE_THRESHOLD = 30
# Assigned when scoring fails, so outages do not silently drop opportunities
NEUTRAL_SCORE = 50

__all__ = [
    "CachingMatchScorer",
    "HeuristicMatchScorer",
    "LLMMatchScorer",
    "MatchScorer",
    "NEUTRAL_SCORE",
    "SCORE_THRESHOLD",
    "apply_threshold",
    "build_scorer",
    "rank_key",
    "score_candidates",
    "sort_candidates",
]


def build_scorer(
    settings: Settings,
    cache_store: Optional["ScoreCacheStore"] = None,
    llm: Optional[StructuredLLM] = None,
) -> MatchScorer:
    """LLM scorer when a key is configured, heuristic otherwise; cached when a store is given."""
    llm = llm or StructuredLLM.from_settings(settings)
    scorer: MatchScorer = LLMMatchScorer(llm) if llm else HeuristicMatchScorer()
    if cache_store is not None and settings.score_cache_enabled:
        scorer = CachingMatchScorer(scorer, cache_store)
    return scorer


def rank_key(candidate: OpportunityCandidate) -> tuple[int, Decimal]:
    """Sort key: score, then amount upper bound (both descending via reverse=True)."""
    upper = candidate.amount.upper if candidate.amount else Decimal("0")
    return (candidate.match_score or 0, upper)


def sort_candidates(candidates: list[OpportunityCandidate]) -> list[OpportunityCandidate]:
    return sorted(candidates, key=rank_key, reverse=True)


def apply_threshold(candidates: list[OpportunityCandidate]) -> list[OpportunityCandidate]:
    """Keep only scored candidates strictly above the threshold."""
    return [c for c in candidates if c.match_score is not None and c.match_score > SCORE_THRESHOLD]


async def score_candidates(
    profile: UserProfile,
    candidates: list[OpportunityCandidate],
    scorer: MatchScorer,
) -> list[OpportunityCandidate]:
    """
    Score candidates sequentially, discard those at or below the threshold and
    return the rest ranked. A scorer failure gives that candidate the neutral
    score instead of dropping it.
    """
    scored: list[OpportunityCandidate] = []
    for candidate in candidates:
        try:
            result = await scorer.score(profile, candidate)
        except Exception as e:
            logger.warning(
                "Scoring failed for %s (%s); assigning neutral score: %s",
                candidate.raw_source_id,
                candidate.source_type.value,
                e,
            )
            result = MatchScore(
                score=NEUTRAL_SCORE,
                reasons=["Automatic matching unavailable; review eligibility manually"],
                eligible=True,
            )
        scored.append(candidate.with_score(result))
    return sort_candidates(apply_threshold(scored))
