"""Abstract base class for money-discovery sources."""

from abc import ABC, abstractmethod

from found_money.models.candidate import OpportunityCandidate, SourceType
from found_money.models.profile import UserProfile


class BaseSource(ABC):
    """
    Standard interface for discovery channels.
    Each source turns a profile into raw (unscored) candidates.
    """

    source_type: SourceType

    @abstractmethod
    async def search(self, profile: UserProfile) -> list[OpportunityCandidate]:
        """
        Return candidates for the profile. Errors propagate; the aggregator
        isolates them per source.
        """
        pass
