"""
Pydantic Schemas for API Request/Response Models

These schemas define the JSON structure for API endpoints.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from found_money.forms import FormField
from found_money.models import Address, ClaimFormDraft, MoneyFoundRecord, RecordStatus
from found_money.pipeline import AggregationResult


class SearchResponse(BaseModel):
    """Aggregated search results."""
    success: bool = True
    message: str
    results: AggregationResult


class PropertyStats(BaseModel):
    total_properties: int
    estimated_total: Decimal
    known_total: Decimal
    unknown_count: int
    average_amount: Decimal


class PropertySearchResponse(SearchResponse):
    """Property search results with totals over the returned records."""
    statistics: PropertyStats


class EmailConnectResponse(BaseModel):
    auth_url: str


class EmailScanResponse(BaseModel):
    success: bool = True
    emails_scanned: int = 0
    opportunities_found: int = 0
    opportunities: list[dict[str, Any]] = Field(default_factory=list)
    message: str


class AutoFillRequest(BaseModel):
    form_fields: dict[str, FormField] = Field(..., min_length=1)
    money_found_id: Optional[str] = None


class AutoFillResponse(BaseModel):
    success: bool
    data: dict[str, Any]
    missing_fields: list[str] = Field(default_factory=list)
    message: str
    form_id: Optional[int] = None


class GeneratePdfRequest(BaseModel):
    form_data: dict[str, Any] = Field(..., min_length=1)
    money_found_id: str


class GeneratePdfResponse(BaseModel):
    success: bool = True
    document_ref: str
    form_id: int
    message: str = "PDF generated successfully"


class ProfileUpdate(BaseModel):
    """Editable profile fields."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    addresses: list[Address] = Field(default_factory=list)
    interests: list[str] = Field(default_factory=list)


class RecordList(BaseModel):
    records: list[MoneyFoundRecord]
    total: int


class StatusUpdateRequest(BaseModel):
    status: RecordStatus
    received_amount: Optional[Decimal] = Field(default=None, ge=0)


class ClaimFormResponse(BaseModel):
    form: ClaimFormDraft


class WebhookAck(BaseModel):
    received: bool = True
    handled: bool
    event_type: str


class HealthCheck(BaseModel):
    """Health check response."""
    status: str
    version: str
    database: str
    configuration: dict[str, bool]
    timestamp: datetime
