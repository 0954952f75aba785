"""Turn scored candidates into durable money-found records."""

import hashlib
import logging
from typing import Any, Optional

from found_money.amounts import amount_numeric
from found_money.models.candidate import (
    CatalogPayload,
    EmailPayload,
    OpportunityCandidate,
    PropertyPayload,
    SourceType,
)
from found_money.models.record import MoneyFoundRecord
from found_money.store.sqlite_store import MoneyFoundStore

logger = logging.getLogger(__name__)


def make_record_id(user_id: str, source_type: SourceType, source_id: str) -> str:
    """Stable, URL-safe id for the natural key."""
    key = f"{user_id}\x1f{source_type.value}\x1f{source_id}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


def _eligibility_text(candidate: OpportunityCandidate) -> Optional[str]:
    payload = candidate.payload
    if isinstance(payload, CatalogPayload):
        return payload.eligibility
    if isinstance(payload, PropertyPayload):
        return f"Registered owner: {payload.owner_name}" if payload.owner_name else None
    if isinstance(payload, EmailPayload):
        return payload.action_required
    raise TypeError(f"Unhandled payload type: {type(payload).__name__}")


def to_record(user_id: str, candidate: OpportunityCandidate) -> MoneyFoundRecord:
    """Map a scored candidate to its record; metadata keeps the source payload and score details."""
    metadata: dict[str, Any] = {
        "payload": candidate.payload.model_dump(mode="json"),
        "eligibility_reasons": list(candidate.eligibility_reasons),
        "likely_eligible": candidate.likely_eligible,
    }
    if candidate.amount is not None:
        metadata["amount_range"] = {"low": str(candidate.amount.low), "high": str(candidate.amount.high)}
    return MoneyFoundRecord(
        id=make_record_id(user_id, candidate.source_type, candidate.raw_source_id),
        user_id=user_id,
        source_type=candidate.source_type,
        source_id=candidate.raw_source_id,
        company_name=candidate.company,
        description=candidate.description,
        amount_text=candidate.amount_text,
        amount_numeric=amount_numeric(candidate.amount_text),
        eligibility_requirements=_eligibility_text(candidate),
        claim_url=candidate.claim_url(),
        claim_deadline=candidate.deadline,
        match_score=candidate.match_score,
        metadata=metadata,
    )


def persist_candidates(
    store: MoneyFoundStore,
    user_id: str,
    source: SourceType,
    candidates: list[OpportunityCandidate],
) -> int:
    """
    Upsert candidates for one source and record the search run.
    Returns the number of new records. Store errors propagate after the run
    is marked failed.
    """
    run = store.start_run(user_id, source.value)
    try:
        records = [to_record(user_id, c) for c in candidates]
        new = store.upsert_many(records)
    except Exception as e:
        store.finish_run(run.id, items_found=len(candidates), items_new=0, status="failed", error_message=str(e))
        raise
    store.finish_run(run.id, items_found=len(records), items_new=new)
    logger.info("Persisted %d %s records for %s (%d new)", len(records), source.value, user_id, new)
    return new
