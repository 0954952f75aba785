"""Content-addressed cache around any MatchScorer."""

import hashlib
import json
import logging
from typing import TYPE_CHECKING

from found_money.models.candidate import MatchScore, OpportunityCandidate
from found_money.models.profile import UserProfile

from .base import MatchScorer
from .llm import candidate_view

if TYPE_CHECKING:
    from found_money.store.score_cache import ScoreCacheStore

logger = logging.getLogger(__name__)


def _digest(data: dict) -> str:
    payload = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode()).hexdigest()


def profile_hash(profile: UserProfile) -> str:
    return _digest(profile.matching_view())


def candidate_hash(candidate: OpportunityCandidate) -> str:
    return _digest(candidate_view(candidate))


class CachingMatchScorer(MatchScorer):
    """
    Returns a stored score for an unchanged (profile, candidate) pair instead of
    calling the wrapped scorer again. Failed scorings are never cached.
    """

    def __init__(self, inner: MatchScorer, store: "ScoreCacheStore"):
        self._inner = inner
        self._store = store
        self.name = f"cached-{inner.name}"

    async def score(self, profile: UserProfile, candidate: OpportunityCandidate) -> MatchScore:
        p_hash = profile_hash(profile)
        c_hash = candidate_hash(candidate)
        cached = self._store.get(p_hash, c_hash, scorer=self._inner.name)
        if cached is not None:
            logger.debug("Score cache hit for %s", candidate.raw_source_id)
            return cached
        result = await self._inner.score(profile, candidate)
        self._store.put(p_hash, c_hash, result, scorer=self._inner.name)
        return result
