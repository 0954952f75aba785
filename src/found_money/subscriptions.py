"""Subscription lifecycle webhooks: signature check and profile updates."""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from found_money.store.profile_store import ProfileStore

logger = logging.getLogger(__name__)

ACTIVATING_EVENTS = {"INITIAL_PURCHASE", "RENEWAL"}
STATUS_BY_EVENT = {
    "CANCELLATION": "cancelled",
    "EXPIRATION": "expired",
    "BILLING_ISSUE": "billing_issue",
}


def verify_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
    """HMAC-SHA256 hex digest of the raw body, compared in constant time."""
    if not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


def tier_for_product(product_id: Optional[str]) -> str:
    product = (product_id or "").lower()
    return "yearly" if "annual" in product or "yearly" in product else "monthly"


def _expiry(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


@dataclass
class EventOutcome:
    event_type: str
    handled: bool
    user_id: Optional[str] = None


def apply_event(store: ProfileStore, body: dict[str, Any]) -> EventOutcome:
    """
    Apply one webhook event to the subscriber's profile and log it.
    Unknown event types are acknowledged without changes.
    """
    event = body["event"] if isinstance(body.get("event"), dict) else body
    event_type = str(event.get("type") or "")
    user_id = event.get("app_user_id")
    product_id = event.get("product_id")

    if event_type in ACTIVATING_EVENTS:
        store.update_subscription(
            user_id,
            status="active",
            tier=tier_for_product(product_id),
            expires_at=_expiry(event.get("expiration_at_ms")),
        )
    elif event_type in STATUS_BY_EVENT:
        store.update_subscription(user_id, status=STATUS_BY_EVENT[event_type])
    elif event_type == "PRODUCT_CHANGE":
        store.update_subscription(user_id, tier=tier_for_product(product_id))
    else:
        logger.info("Ignoring subscription event type %r", event_type)
        return EventOutcome(event_type=event_type, handled=False, user_id=user_id)

    store.record_subscription_event(user_id, event_type, event)
    logger.info("Applied subscription event %s for %s", event_type, user_id)
    return EventOutcome(event_type=event_type, handled=True, user_id=user_id)
