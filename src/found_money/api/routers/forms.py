"""
Forms Router

Claim form auto-fill, PDF generation and draft retrieval.
"""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from found_money.api.auth import get_current_profile, get_current_user_id
from found_money.api.dependencies import (
    get_claim_form_store,
    get_document_store,
    get_form_filler,
    get_money_store,
)
from found_money.api.schemas import (
    AutoFillRequest,
    AutoFillResponse,
    ClaimFormResponse,
    GeneratePdfRequest,
    GeneratePdfResponse,
)
from found_money.forms import DocumentStore, FormFiller, auto_fill, render_claim_pdf, sanitize_form_data
from found_money.models.profile import UserProfile
from found_money.models.record import MoneyFoundRecord
from found_money.store import ClaimFormStore, MoneyFoundStore

router = APIRouter(prefix="/forms", tags=["forms"])


def claim_info(record: MoneyFoundRecord) -> dict[str, Any]:
    payload = record.metadata.get("payload") or {}
    return {
        "id": record.id,
        "company": record.company_name,
        "title": payload.get("title") or record.description,
        "amount": record.amount_text,
    }


def _owned_record(store: MoneyFoundStore, record_id: str, user_id: str) -> MoneyFoundRecord:
    record = store.get(record_id, user_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Money found record not found")
    return record


@router.post("/auto-fill", response_model=AutoFillResponse)
async def auto_fill_form(
    body: AutoFillRequest,
    profile: UserProfile = Depends(get_current_profile),
    filler: FormFiller = Depends(get_form_filler),
    money_store: MoneyFoundStore = Depends(get_money_store),
    form_store: ClaimFormStore = Depends(get_claim_form_store),
):
    """
    Fill the given fields from the user's profile. Required fields that stay
    empty are listed in ``missing_fields``; a complete fill for a record is
    saved as its draft.
    """
    record = _owned_record(money_store, body.money_found_id, profile.user_id) if body.money_found_id else None
    result = await auto_fill(body.form_fields, profile, record, filler=filler, store=form_store)
    return AutoFillResponse(**result.model_dump())


@router.post("/generate-pdf", response_model=GeneratePdfResponse)
async def generate_pdf(
    body: GeneratePdfRequest,
    user_id: str = Depends(get_current_user_id),
    money_store: MoneyFoundStore = Depends(get_money_store),
    form_store: ClaimFormStore = Depends(get_claim_form_store),
    documents: DocumentStore = Depends(get_document_store),
):
    """Render the claim form, store the document and complete the draft."""
    record = _owned_record(money_store, body.money_found_id, user_id)
    form_data = sanitize_form_data(body.form_data)
    content = render_claim_pdf(form_data, claim_info(record))
    reference = documents.save(user_id, record.id, content)
    draft = form_store.save(user_id, record.id, form_data, document_ref=reference)
    return GeneratePdfResponse(document_ref=reference, form_id=draft.id)


@router.get("/{form_id}", response_model=ClaimFormResponse)
async def get_form(
    form_id: int,
    user_id: str = Depends(get_current_user_id),
    form_store: ClaimFormStore = Depends(get_claim_form_store),
):
    draft = form_store.get(form_id, user_id)
    if draft is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Claim form not found")
    return ClaimFormResponse(form=draft)
