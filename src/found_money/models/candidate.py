"""Pipeline-internal opportunity candidates.

A candidate is a tagged union: ``source_type`` is the discriminant and
``payload`` carries the source-specific fields. Merge and persistence code
dispatch on ``source_type`` and must handle every member of ``SourceType``.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class SourceType(str, Enum):
    """Discovery channel a candidate came from."""

    CATALOG = "catalog_settlement"
    PROPERTY = "property_record"
    EMAIL = "email_derived"


class AmountRange(BaseModel):
    """Parsed monetary amount. A point amount has ``low == high``."""

    low: Decimal
    high: Decimal

    @property
    def upper(self) -> Decimal:
        return self.high

    @property
    def is_point(self) -> bool:
        return self.low == self.high


class MatchScore(BaseModel):
    """Relevance estimate for one candidate against one profile."""

    score: int = Field(..., ge=0, le=100)
    reasons: list[str] = Field(default_factory=list)
    eligible: bool = True


class CatalogPayload(BaseModel):
    kind: Literal["catalog_settlement"] = "catalog_settlement"
    settlement_id: str
    title: str
    total_settlement: Optional[str] = None
    eligibility: Optional[str] = None
    claim_url: Optional[str] = None
    categories: list[str] = Field(default_factory=list)


class PropertyPayload(BaseModel):
    kind: Literal["property_record"] = "property_record"
    jurisdiction: str
    property_id: str
    owner_name: str
    property_type: Optional[str] = None
    reported_by: Optional[str] = None
    date_reported: Optional[date] = None
    location: Optional[str] = None
    claim_url: Optional[str] = None


class EmailPayload(BaseModel):
    kind: Literal["email_derived"] = "email_derived"
    message_id: str
    subject: str = ""
    sender: str = ""
    sent_at: Optional[str] = None
    opportunity_type: str = "other"
    action_required: Optional[str] = None


Payload = Annotated[
    Union[CatalogPayload, PropertyPayload, EmailPayload],
    Field(discriminator="kind"),
]


class OpportunityCandidate(BaseModel):
    """Unpersisted potential money opportunity from one source."""

    source_type: SourceType
    company: str
    description: str = ""
    amount_text: Optional[str] = None
    amount: Optional[AmountRange] = None
    deadline: Optional[date] = None

    match_score: Optional[int] = Field(default=None, ge=0, le=100)
    eligibility_reasons: list[str] = Field(default_factory=list)
    likely_eligible: Optional[bool] = None

    raw_source_id: str
    payload: Payload

    @model_validator(mode="after")
    def _payload_matches_source(self) -> "OpportunityCandidate":
        if self.payload.kind != self.source_type.value:
            raise ValueError(
                f"payload kind {self.payload.kind!r} does not match source_type {self.source_type.value!r}"
            )
        return self

    @property
    def is_scored(self) -> bool:
        return self.match_score is not None

    def with_score(self, result: MatchScore) -> "OpportunityCandidate":
        return self.model_copy(
            update={
                "match_score": result.score,
                "eligibility_reasons": list(result.reasons),
                "likely_eligible": result.eligible,
            }
        )

    def claim_url(self) -> Optional[str]:
        return getattr(self.payload, "claim_url", None)
