"""
Email Router

Gmail connection (OAuth round trip) and mailbox scanning.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse

from found_money.api.auth import create_state_token, get_current_profile, verify_state_token
from found_money.api.dependencies import get_aggregator, get_gmail_client, get_profile_store, get_settings
from found_money.api.schemas import EmailConnectResponse, EmailScanResponse
from found_money.config import Settings
from found_money.errors import UpstreamError
from found_money.models.candidate import SourceType
from found_money.models.profile import UserProfile
from found_money.pipeline import Aggregator
from found_money.sources.email import GmailClient
from found_money.store import ProfileStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/email", tags=["email"])


def is_mobile_agent(user_agent: Optional[str]) -> bool:
    return "mobile" in (user_agent or "").lower()


@router.post("/connect", response_model=EmailConnectResponse)
async def connect_email(
    profile: UserProfile = Depends(get_current_profile),
    gmail: GmailClient = Depends(get_gmail_client),
    settings: Settings = Depends(get_settings),
):
    """Start the authorization grant. The state parameter is a signed, short-lived token."""
    if not gmail.configured:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Email integration not configured")
    return EmailConnectResponse(auth_url=gmail.authorization_url(create_state_token(profile.user_id, settings)))


@router.get("/callback")
async def email_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    gmail: GmailClient = Depends(get_gmail_client),
    store: ProfileStore = Depends(get_profile_store),
    settings: Settings = Depends(get_settings),
):
    """Finish the grant, store the tokens and send the user back to the app."""
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No authorization code provided")
    user_id = verify_state_token(state, settings)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid state parameter")

    try:
        tokens = await gmail.exchange_code(code)
    except UpstreamError as e:
        logger.warning("Code exchange failed for %s: %s", user_id, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to exchange authorization code")
    access_token = tokens.get("access_token")
    if not access_token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to get access token")

    if not store.set_email_tokens(user_id, access_token, tokens.get("refresh_token")):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User profile not found")
    logger.info("Email connected for %s", user_id)

    if is_mobile_agent(request.headers.get("user-agent")):
        target = settings.app_deep_link
    else:
        target = f"{settings.app_web_url.rstrip('/')}/gmail-connected?success=true"
    return RedirectResponse(target, status_code=status.HTTP_302_FOUND)


@router.post("/scan", response_model=EmailScanResponse)
async def scan_email(
    profile: UserProfile = Depends(get_current_profile),
    aggregator: Aggregator = Depends(get_aggregator),
):
    """Scan the connected mailbox for refunds, rebates and settlements."""
    result = await aggregator.scan_email(profile)
    if result.source_status.get(SourceType.EMAIL.value) == "not_connected":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email not connected. Please connect your email first.",
        )
    search_errors = [e for e in result.partial_errors if e.stage == "search"]
    if search_errors:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=search_errors[0].message)

    opportunities = result.email_opportunities
    return EmailScanResponse(
        emails_scanned=result.emails_scanned or 0,
        opportunities_found=len(opportunities),
        opportunities=[o.model_dump(mode="json") for o in opportunities],
        message=f"Found {len(opportunities)} potential money opportunities",
    )
