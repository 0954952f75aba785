"""Persisted money-found records and claim form drafts."""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from found_money.models.candidate import SourceType


class RecordStatus(str, Enum):
    """Claim lifecycle. Transitions only move forward."""

    UNCLAIMED = "unclaimed"
    CLAIMED = "claimed"
    RECEIVED = "received"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = [RecordStatus.UNCLAIMED, RecordStatus.CLAIMED, RecordStatus.RECEIVED]


class MoneyFoundRecord(BaseModel):
    """Durable form of a scored candidate, owned by one user."""

    id: str = Field(..., description="Deterministic ID derived from (user_id, source_type, source_id)")
    user_id: str
    source_type: SourceType
    source_id: str

    company_name: str
    description: str = ""
    amount_text: Optional[str] = None
    amount_numeric: Optional[Decimal] = None
    eligibility_requirements: Optional[str] = None
    claim_url: Optional[str] = None
    claim_deadline: Optional[date] = None
    match_score: Optional[int] = None

    status: RecordStatus = RecordStatus.UNCLAIMED
    received_amount: Optional[Decimal] = None

    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FormStatus(str, Enum):
    DRAFT = "draft"
    COMPLETED = "completed"


class ClaimFormDraft(BaseModel):
    """Filled field values for one record, plus the rendered document once generated."""

    id: int = 0
    user_id: str
    money_found_id: str
    form_data: dict[str, Any] = Field(default_factory=dict)
    document_ref: Optional[str] = None
    status: FormStatus = FormStatus.DRAFT
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
