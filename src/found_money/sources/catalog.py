"""Settlement catalog source: a fixed list of class-action settlements with claim deadlines."""

import logging
from datetime import date
from pathlib import Path
from typing import Callable, Optional

import yaml
from pydantic import BaseModel, Field

from found_money.amounts import parse_amount
from found_money.models.candidate import CatalogPayload, OpportunityCandidate, SourceType
from found_money.models.profile import UserProfile

from .base import BaseSource

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "data" / "settlements.yaml"


class Settlement(BaseModel):
    """One catalog entry."""

    id: str
    company: str
    title: str
    amount: Optional[str] = Field(default=None, description="Total settlement fund")
    estimated_payout: Optional[str] = Field(default=None, description="Per-claimant payout, e.g. '$30-$200'")
    description: str = ""
    eligibility: Optional[str] = None
    deadline: date
    claim_url: Optional[str] = None
    categories: list[str] = Field(default_factory=list)


def load_catalog(path: str | Path = DEFAULT_CATALOG_PATH) -> list[Settlement]:
    """Load settlement definitions from YAML."""
    data = yaml.safe_load(Path(path).read_text()) or {}
    return [Settlement.model_validate(item) for item in data.get("settlements", [])]


class CatalogSource(BaseSource):
    """
    Filters the catalog to settlements still open for claims.
    Deadlines are compared as calendar dates against the local date.
    """

    source_type = SourceType.CATALOG

    def __init__(
        self,
        settlements: Optional[list[Settlement]] = None,
        *,
        catalog_path: Optional[str | Path] = None,
        today: Callable[[], date] = date.today,
    ):
        if settlements is None:
            settlements = load_catalog(catalog_path or DEFAULT_CATALOG_PATH)
        self._settlements = settlements
        self._today = today

    def open_settlements(self) -> list[Settlement]:
        today = self._today()
        return [s for s in self._settlements if not s.deadline < today]

    def get_settlement(self, settlement_id: str) -> Settlement:
        """Look up one catalog entry. Raises KeyError when absent."""
        for settlement in self._settlements:
            if settlement.id == settlement_id:
                return settlement
        raise KeyError(f"Settlement not found: {settlement_id}")

    async def search(self, profile: UserProfile) -> list[OpportunityCandidate]:
        open_now = self.open_settlements()
        if self._settlements and not open_now:
            logger.warning(
                "Catalog: all %d settlements are past their deadline; point FOUND_MONEY_CATALOG_PATH at a current catalog",
                len(self._settlements),
            )
        logger.info(
            "Catalog: %d of %d settlements open for %s",
            len(open_now),
            len(self._settlements),
            profile.user_id,
        )
        return [self._to_candidate(s) for s in open_now]

    def _to_candidate(self, settlement: Settlement) -> OpportunityCandidate:
        return OpportunityCandidate(
            source_type=SourceType.CATALOG,
            company=settlement.company,
            description=settlement.description or settlement.title,
            amount_text=settlement.estimated_payout,
            amount=parse_amount(settlement.estimated_payout),
            deadline=settlement.deadline,
            raw_source_id=settlement.id,
            payload=CatalogPayload(
                settlement_id=settlement.id,
                title=settlement.title,
                total_settlement=settlement.amount,
                eligibility=settlement.eligibility,
                claim_url=settlement.claim_url,
                categories=settlement.categories,
            ),
        )
