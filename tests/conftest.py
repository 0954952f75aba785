"""Pytest fixtures for found-money tests."""

import tempfile
from datetime import date
from pathlib import Path
from typing import Any, Optional

import pytest

from found_money.amounts import parse_amount
from found_money.config import Settings
from found_money.models.candidate import (
    CatalogPayload,
    EmailPayload,
    OpportunityCandidate,
    PropertyPayload,
    SourceType,
)
from found_money.models.profile import Address, UserProfile


class FakeLLM:
    """Stands in for StructuredLLM: returns queued responses or raises queued errors."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[tuple[str, str]] = []

    async def complete_json(self, system_prompt: str, user_content: str) -> dict:
        self.calls.append((system_prompt, user_content))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def make_candidate(
    source_type: SourceType = SourceType.CATALOG,
    source_id: str = "facebook-privacy-2024",
    company: str = "Meta (Facebook)",
    amount_text: Optional[str] = "$30-$200",
    score: Optional[int] = None,
    **payload_kwargs: Any,
) -> OpportunityCandidate:
    """Candidate of any source type with sensible payload defaults."""
    if source_type == SourceType.CATALOG:
        payload = CatalogPayload(
            settlement_id=source_id,
            title=payload_kwargs.pop("title", f"{company} settlement"),
            claim_url=payload_kwargs.pop("claim_url", "https://example.com/claim"),
            **payload_kwargs,
        )
    elif source_type == SourceType.PROPERTY:
        payload = PropertyPayload(
            jurisdiction=payload_kwargs.pop("jurisdiction", "CA"),
            property_id=payload_kwargs.pop("property_id", source_id),
            owner_name=payload_kwargs.pop("owner_name", "JANE DOE"),
            **payload_kwargs,
        )
    else:
        payload = EmailPayload(message_id=payload_kwargs.pop("message_id", "msg-1"), **payload_kwargs)
    return OpportunityCandidate(
        source_type=source_type,
        company=company,
        description=f"{company} opportunity",
        amount_text=amount_text,
        amount=parse_amount(amount_text),
        match_score=score,
        raw_source_id=source_id,
        payload=payload,
    )


@pytest.fixture
def temp_db() -> Path:
    """Temporary database path for isolated tests."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = Path(f.name)
    yield path
    path.unlink(missing_ok=True)


@pytest.fixture
def settings(temp_db: Path, tmp_path: Path) -> Settings:
    """Settings pointing at temporary storage, with no external services configured."""
    return Settings(
        _env_file=None,
        database_path=temp_db,
        documents_dir=tmp_path / "documents",
        jwt_secret="test-secret",
        openai_api_key=None,
        gmail_client_id=None,
        gmail_client_secret=None,
        gmail_redirect_uri=None,
        webhook_secret=None,
        redis_url=None,
        property_lookup_url=None,
        retry_backoff_seconds=0,
    )


@pytest.fixture
def profile() -> UserProfile:
    """Profile with two past addresses and a few interests."""
    return UserProfile(
        user_id="user-1",
        first_name="Jane",
        last_name="Doe",
        email="jane@example.com",
        phone="555-0100",
        date_of_birth=date(1988, 4, 2),
        addresses=[
            Address(line1="1 Main St", city="Los Angeles", state="ca", postal_code="90001"),
            Address(line1="2 Broadway", city="New York", state="NY", postal_code="10001"),
        ],
        interests=["Facebook", "Verizon", "Zoom"],
    )
