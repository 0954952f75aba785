"""Unclaimed-property source: one registry lookup per jurisdiction, run concurrently."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import httpx
import yaml

from found_money.amounts import parse_amount
from found_money.errors import JurisdictionNotSupportedError, RequestValidationError
from found_money.fetch import DEFAULT_BACKOFF, fetch_with_retry, make_client
from found_money.models.candidate import OpportunityCandidate, PropertyPayload, SourceType
from found_money.models.profile import UserProfile

from .base import BaseSource

logger = logging.getLogger(__name__)

SAMPLE_RECORDS_PATH = Path(__file__).resolve().parent.parent / "data" / "property_samples.yaml"


@dataclass(frozen=True)
class Jurisdiction:
    code: str
    name: str
    url: str
    search_url: str


JURISDICTIONS: dict[str, Jurisdiction] = {
    "CA": Jurisdiction("CA", "California", "https://ucpi.sco.ca.gov", "https://ucpi.sco.ca.gov/UCP/Default.aspx"),
    "NY": Jurisdiction("NY", "New York", "https://www.osc.state.ny.us", "https://www.osc.state.ny.us/ouf"),
    "TX": Jurisdiction("TX", "Texas", "https://claimittexas.gov", "https://claimittexas.gov/app/claim-search"),
    "FL": Jurisdiction("FL", "Florida", "https://fltreasurehunt.gov", "https://fltreasurehunt.gov"),
    "IL": Jurisdiction("IL", "Illinois", "https://icash.illinoistreasurer.gov", "https://icash.illinoistreasurer.gov"),
}

DEFAULT_JURISDICTIONS = ("CA", "NY", "TX", "FL", "IL")


def supported_jurisdictions() -> list[dict[str, str]]:
    """Code, name and search URL for every known registry."""
    return [
        {"code": j.code, "name": j.name, "search_url": j.search_url}
        for j in JURISDICTIONS.values()
    ]


def get_jurisdiction(code: str) -> Jurisdiction:
    jurisdiction = JURISDICTIONS.get((code or "").upper())
    if jurisdiction is None:
        raise JurisdictionNotSupportedError(f"Jurisdiction {code} not supported")
    return jurisdiction


class JurisdictionLookup(ABC):
    """Backend that searches one registry for an owner name."""

    @abstractmethod
    async def lookup(self, jurisdiction: Jurisdiction, first_name: str, last_name: str) -> list[dict[str, Any]]:
        """
        Return raw records with keys property_id, amount, type, reported_by,
        date_reported, location and owner_name.
        """
        pass


class SampleJurisdictionLookup(JurisdictionLookup):
    """
    Serves bundled sample records. State registries expose no uniform API,
    so this is the default backend; the owner name is the searched name.
    """

    def __init__(self, records: Optional[list[dict[str, Any]]] = None, path: Path = SAMPLE_RECORDS_PATH):
        if records is None:
            data = yaml.safe_load(path.read_text()) or {}
            records = data.get("records", [])
        self._records = records

    async def lookup(self, jurisdiction: Jurisdiction, first_name: str, last_name: str) -> list[dict[str, Any]]:
        owner = f"{first_name} {last_name}".upper()
        return [
            {**record, "owner_name": owner}
            for record in self._records
            if str(record.get("state", "")).upper() == jurisdiction.code
        ]


class HttpJurisdictionLookup(JurisdictionLookup):
    """
    Queries a JSON endpoint: GET <base_url>/<code>?first_name=..&last_name=..
    returning {"records": [...]} (or a bare list).
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        *,
        backoff: float = DEFAULT_BACKOFF,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._backoff = backoff

    async def lookup(self, jurisdiction: Jurisdiction, first_name: str, last_name: str) -> list[dict[str, Any]]:
        client = self._client or make_client()
        try:
            response = await fetch_with_retry(
                client,
                "GET",
                f"{self.base_url}/{jurisdiction.code}",
                params={"first_name": first_name, "last_name": last_name},
                backoff=self._backoff,
            )
        finally:
            if self._client is None:
                await client.aclose()
        data = response.json()
        if isinstance(data, dict):
            data = data.get("records", [])
        return list(data or [])


def _parse_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def owner_name(profile: UserProfile) -> tuple[str, str]:
    """The name registries are searched by. Raises RequestValidationError when either part is blank."""
    first = (profile.first_name or "").strip()
    last = (profile.last_name or "").strip()
    if not first or not last:
        raise RequestValidationError("First and last name required for property search")
    return first, last


class PropertySource(BaseSource):
    """Searches the registry of every jurisdiction the user has lived in."""

    source_type = SourceType.PROPERTY

    def __init__(self, lookup: Optional[JurisdictionLookup] = None):
        self.lookup = lookup or SampleJurisdictionLookup()

    @staticmethod
    def jurisdictions_for(profile: UserProfile) -> list[str]:
        return profile.states() or list(DEFAULT_JURISDICTIONS)

    async def search(self, profile: UserProfile) -> list[OpportunityCandidate]:
        first, last = owner_name(profile)
        codes = self.jurisdictions_for(profile)
        shards = await asyncio.gather(*(self._search_one(code, first, last) for code in codes))
        candidates = [c for shard in shards for c in shard]
        logger.info("Property: %d records across %s for %s", len(candidates), ",".join(codes), profile.user_id)
        return candidates

    async def _search_one(self, code: str, first: str, last: str) -> list[OpportunityCandidate]:
        try:
            jurisdiction = get_jurisdiction(code)
            records = await self.lookup.lookup(jurisdiction, first, last)
            return [self._to_candidate(jurisdiction, r) for r in records]
        except Exception as e:
            logger.warning("Property lookup failed for %s: %s", code, e)
            return []

    def _to_candidate(self, jurisdiction: Jurisdiction, record: dict[str, Any]) -> OpportunityCandidate:
        property_id = str(record["property_id"])
        amount_text = record.get("amount")
        amount_text = str(amount_text) if amount_text is not None else None
        property_type = record.get("type") or record.get("property_type")
        reported_by = record.get("reported_by")
        description = " from ".join(p for p in (property_type, reported_by) if p) or "Unclaimed property"
        return OpportunityCandidate(
            source_type=SourceType.PROPERTY,
            company=reported_by or jurisdiction.name,
            description=description,
            amount_text=amount_text,
            amount=parse_amount(amount_text),
            raw_source_id=f"{jurisdiction.code}:{property_id}",
            payload=PropertyPayload(
                jurisdiction=jurisdiction.code,
                property_id=property_id,
                owner_name=str(record.get("owner_name") or ""),
                property_type=property_type,
                reported_by=reported_by,
                date_reported=_parse_date(record.get("date_reported")),
                location=record.get("location"),
                claim_url=f"{jurisdiction.search_url}?id={property_id}",
            ),
        )


def property_stats(candidates: list[OpportunityCandidate]) -> dict[str, Any]:
    """Totals over property candidates; "Over $X" style amounts count at their floor but as unknown."""
    total = Decimal("0")
    known = Decimal("0")
    unknown = 0
    for candidate in candidates:
        text = (candidate.amount_text or "").lower()
        if candidate.amount is None:
            unknown += 1
            continue
        total += candidate.amount.upper
        if "over" in text or "at least" in text:
            unknown += 1
        else:
            known += candidate.amount.upper
    count = len(candidates)
    return {
        "total_properties": count,
        "estimated_total": total,
        "known_total": known,
        "unknown_count": unknown,
        "average_amount": (total / count) if count else Decimal("0"),
    }
