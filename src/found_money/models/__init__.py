"""Data models for profiles, candidates and persisted records."""

from found_money.models.candidate import (
    AmountRange,
    CatalogPayload,
    EmailPayload,
    MatchScore,
    OpportunityCandidate,
    PropertyPayload,
    SourceType,
)
from found_money.models.profile import Address, UserProfile
from found_money.models.record import ClaimFormDraft, FormStatus, MoneyFoundRecord, RecordStatus

__all__ = [
    "Address",
    "AmountRange",
    "CatalogPayload",
    "ClaimFormDraft",
    "EmailPayload",
    "FormStatus",
    "MatchScore",
    "MoneyFoundRecord",
    "OpportunityCandidate",
    "PropertyPayload",
    "RecordStatus",
    "SourceType",
    "UserProfile",
]
