"""
Webhooks Router

Subscription lifecycle events from the billing provider.
"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from found_money.api.dependencies import get_profile_store, get_settings
from found_money.api.schemas import WebhookAck
from found_money.config import Settings
from found_money.store import ProfileStore
from found_money.subscriptions import apply_event, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "X-Signature"


@router.post("/subscription", response_model=WebhookAck)
async def subscription_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: ProfileStore = Depends(get_profile_store),
):
    """Verify the HMAC signature over the raw body, then apply the event."""
    if not settings.webhook_secret:
        logger.error("Webhook secret not configured")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Webhook configuration error")

    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing webhook signature")
    if not verify_signature(raw_body, signature, settings.webhook_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        body = json.loads(raw_body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid event payload")

    outcome = apply_event(store, body)
    return WebhookAck(handled=outcome.handled, event_type=outcome.event_type)
