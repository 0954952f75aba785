"""Pluggable match scorer interface."""

from abc import ABC, abstractmethod

from found_money.models.candidate import MatchScore, OpportunityCandidate
from found_money.models.profile import UserProfile


class MatchScorer(ABC):
    """Assigns a 0-100 relevance score and eligibility explanation to a candidate."""

    name: str = ""

    @abstractmethod
    async def score(self, profile: UserProfile, candidate: OpportunityCandidate) -> MatchScore:
        """
        Score one candidate. Raises ScoringError when no score could be produced.
        """
        pass
