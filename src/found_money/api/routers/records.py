"""
Money Found Router

The user's saved opportunities and their claim status.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from found_money.api.auth import get_current_user_id
from found_money.api.dependencies import get_money_store
from found_money.api.schemas import RecordList, StatusUpdateRequest
from found_money.models.record import MoneyFoundRecord, RecordStatus
from found_money.store import MoneyFoundStore

router = APIRouter(prefix="/money-found", tags=["money-found"])


@router.get("", response_model=RecordList)
async def list_records(
    record_status: Optional[RecordStatus] = Query(None, alias="status", description="Filter by claim status"),
    user_id: str = Depends(get_current_user_id),
    store: MoneyFoundStore = Depends(get_money_store),
):
    records = store.list_for_user(user_id, record_status.value if record_status else None)
    return RecordList(records=records, total=len(records))


@router.post("/{record_id}/status", response_model=MoneyFoundRecord)
async def update_status(
    record_id: str,
    body: StatusUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    store: MoneyFoundStore = Depends(get_money_store),
):
    """
    Move a record forward (unclaimed → claimed → received).
    Regressions are rejected with 409.
    """
    record = store.update_status(record_id, user_id, body.status, body.received_amount)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Money found record not found")
    return record
