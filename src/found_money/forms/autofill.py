"""Claim form auto-fill from the user's profile."""

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from found_money.llm import FORM_FILLING_PROMPT, StructuredLLM, dump_for_prompt
from found_money.models.profile import UserProfile
from found_money.models.record import MoneyFoundRecord
from found_money.store.claim_forms import ClaimFormStore

from .sanitize import sanitize_form_data

logger = logging.getLogger(__name__)


class FormField(BaseModel):
    """Definition of one claim form field."""

    label: Optional[str] = None
    description: Optional[str] = None
    required: bool = False


class AutoFillResult(BaseModel):
    success: bool
    data: dict[str, Any] = Field(default_factory=dict)
    missing_fields: list[str] = Field(default_factory=list)
    message: str = ""
    form_id: Optional[int] = None


def form_user_data(profile: UserProfile, record: Optional[MoneyFoundRecord] = None) -> dict[str, Any]:
    """Profile fields a claim form may ask for, plus the claim being filed."""
    data = profile.model_dump(
        mode="json",
        include={"first_name", "last_name", "email", "phone", "date_of_birth", "addresses"},
    )
    if record is not None:
        data["claim"] = record.model_dump(
            mode="json",
            include={"company_name", "description", "amount_text", "claim_url", "claim_deadline"},
        )
    return data


def _profile_value(profile: UserProfile, field_name: str) -> Optional[str]:
    """Direct profile lookup for well-known field names."""
    name = field_name.lower().replace("-", "_").replace(" ", "_")
    address = profile.addresses[0] if profile.addresses else None
    direct = {
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "full_name": profile.full_name() or None,
        "name": profile.full_name() or None,
        "email": profile.email,
        "email_address": profile.email,
        "phone": profile.phone,
        "phone_number": profile.phone,
        "date_of_birth": profile.date_of_birth.isoformat() if profile.date_of_birth else None,
        "dob": profile.date_of_birth.isoformat() if profile.date_of_birth else None,
        "address": address.line1 if address else None,
        "street_address": address.line1 if address else None,
        "city": address.city if address else None,
        "state": address.state if address else None,
        "zip": address.postal_code if address else None,
        "zip_code": address.postal_code if address else None,
        "postal_code": address.postal_code if address else None,
    }
    return direct.get(name)


class FormFiller:
    """
    Fills form fields from a profile. Uses the reasoning service when one
    is configured, otherwise maps well-known field names directly.
    """

    def __init__(self, llm: Optional[StructuredLLM] = None):
        self._llm = llm

    async def fill(
        self,
        form_fields: dict[str, FormField],
        profile: UserProfile,
        record: Optional[MoneyFoundRecord] = None,
    ) -> dict[str, Any]:
        if self._llm is None:
            return {name: _profile_value(profile, name) for name in form_fields}

        user_content = "\n\n".join(
            [
                dump_for_prompt("User Information", form_user_data(profile, record)),
                dump_for_prompt("Form Fields", {k: v.model_dump() for k, v in form_fields.items()}),
            ]
        )
        data = await self._llm.complete_json(FORM_FILLING_PROMPT, user_content)
        # Unknown keys from the model are dropped; missing ones become null
        return {name: data.get(name) for name in form_fields}


async def auto_fill(
    form_fields: dict[str, FormField],
    profile: UserProfile,
    record: Optional[MoneyFoundRecord] = None,
    *,
    filler: FormFiller,
    store: Optional[ClaimFormStore] = None,
) -> AutoFillResult:
    """
    Fill the form and report required fields left empty. A complete fill
    for a known record is saved as that record's draft.
    """
    data = sanitize_form_data(await filler.fill(form_fields, profile, record))
    missing = [name for name, field in form_fields.items() if field.required and not data.get(name)]
    if missing:
        logger.info("Auto-fill for %s left %d required fields empty", profile.user_id, len(missing))
        return AutoFillResult(
            success=False,
            data=data,
            missing_fields=missing,
            message="Some required fields could not be auto-filled",
        )

    form_id = None
    if record is not None and store is not None:
        form_id = store.save(profile.user_id, record.id, data).id
    return AutoFillResult(success=True, data=data, message="Form auto-filled successfully", form_id=form_id)
