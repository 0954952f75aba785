"""Email source: Gmail search for money-related messages, classified one message at a time."""

import asyncio
import base64
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from bs4 import BeautifulSoup

from found_money.amounts import parse_amount
from found_money.config import Settings
from found_money.errors import EmailNotConnectedError, UpstreamError
from found_money.fetch import DEFAULT_BACKOFF, fetch_with_retry, make_client
from found_money.llm import EMAIL_ANALYSIS_PROMPT, StructuredLLM
from found_money.models.candidate import EmailPayload, OpportunityCandidate, SourceType
from found_money.models.profile import UserProfile
from found_money.store.profile_store import ProfileStore

from .base import BaseSource

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
GMAIL_API = "https://gmail.googleapis.com/gmail/v1/users/me"

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]

MONEY_KEYWORDS = [
    "refund",
    "rebate",
    "settlement",
    "class action",
    "reimbursement",
    "credit",
    "overpayment",
    "price drop",
    "price adjustment",
    "compensation",
]

MAX_LISTED = 50
MAX_FETCHED = 20
MAX_BODY_CHARS = 5000
DEFAULT_CONFIDENCE = 70


def build_query(keywords: list[str] = MONEY_KEYWORDS) -> str:
    joined = " OR ".join(f'"{k}"' for k in keywords)
    return f"({joined}) newer_than:1y"


@dataclass
class EmailMessage:
    id: str
    subject: str = ""
    sender: str = ""
    sent_at: str = ""
    body: str = ""

    def as_prompt(self) -> str:
        return f"Subject: {self.subject}\nFrom: {self.sender}\n\n{self.body}"


def _decode_part(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")


def extract_email_content(message: dict[str, Any]) -> EmailMessage:
    """Headers plus a plain-text body: all MIME parts decoded, markup stripped, truncated."""
    payload = message.get("payload") or {}
    headers = {h.get("name", "").lower(): h.get("value", "") for h in payload.get("headers", [])}

    chunks: list[str] = []

    def _walk(part: dict[str, Any]) -> None:
        data = (part.get("body") or {}).get("data")
        if data:
            chunks.append(_decode_part(data))
        for child in part.get("parts") or []:
            _walk(child)

    _walk(payload)
    text = BeautifulSoup(" ".join(chunks), "html.parser").get_text(" ")
    body = re.sub(r"\s+", " ", text).strip()
    return EmailMessage(
        id=str(message.get("id", "")),
        subject=headers.get("subject", ""),
        sender=headers.get("from", ""),
        sent_at=headers.get("date", ""),
        body=body[:MAX_BODY_CHARS],
    )


class GmailClient:
    """Minimal Gmail REST + OAuth client over httpx."""

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        redirect_uri: Optional[str],
        http: Optional[httpx.AsyncClient] = None,
        *,
        backoff: float = DEFAULT_BACKOFF,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._http = http
        self._backoff = backoff

    @classmethod
    def from_settings(cls, settings: Settings, http: Optional[httpx.AsyncClient] = None) -> "GmailClient":
        return cls(
            settings.gmail_client_id,
            settings.gmail_client_secret,
            settings.gmail_redirect_uri,
            http,
            backoff=settings.retry_backoff_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def _require_config(self) -> None:
        if not self.configured:
            raise UpstreamError("Missing Gmail OAuth configuration", transient=False)

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        client = self._http or make_client()
        try:
            response = await fetch_with_retry(client, method, url, backoff=self._backoff, **kwargs)
            return response.json()
        finally:
            if self._http is None:
                await client.aclose()

    def authorization_url(self, state: str) -> str:
        self._require_config()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """Trade an authorization code for access and refresh tokens."""
        self._require_config()
        return await self._request(
            "POST",
            TOKEN_URL,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
        )

    async def refresh_access_token(self, refresh_token: str) -> str:
        self._require_config()
        data = await self._request(
            "POST",
            TOKEN_URL,
            data={
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
            },
        )
        token = data.get("access_token")
        if not token:
            raise UpstreamError("Token refresh returned no access token", transient=False)
        return token

    async def list_message_ids(self, access_token: str, query: str, max_results: int = MAX_LISTED) -> list[str]:
        data = await self._request(
            "GET",
            f"{GMAIL_API}/messages",
            params={"q": query, "maxResults": max_results},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return [m["id"] for m in data.get("messages") or []]

    async def get_message(self, access_token: str, message_id: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"{GMAIL_API}/messages/{message_id}",
            params={"format": "full"},
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def search_money_emails(self, access_token: str) -> list[EmailMessage]:
        """
        List up to 50 matching ids and fetch the 20 most recent in full.
        A failed fetch drops that message; a 401 on the listing propagates.
        """
        ids = await self.list_message_ids(access_token, build_query())

        async def _fetch(message_id: str) -> Optional[EmailMessage]:
            try:
                return extract_email_content(await self.get_message(access_token, message_id))
            except Exception as e:
                logger.warning("Skipping message %s: %s", message_id, e)
                return None

        fetched = await asyncio.gather(*(_fetch(i) for i in ids[:MAX_FETCHED]))
        return [m for m in fetched if m is not None]


class EmailClassifier:
    """Asks the reasoning service which money opportunities a message contains."""

    def __init__(self, llm: StructuredLLM):
        self._llm = llm

    async def classify(self, message: EmailMessage) -> list[dict[str, Any]]:
        data = await self._llm.complete_json(EMAIL_ANALYSIS_PROMPT, message.as_prompt())
        if not data.get("found"):
            return []
        return [o for o in data.get("opportunities") or [] if isinstance(o, dict)]


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-") or "unknown"


def _email_source_id(message_id: str, company: str, occurrence: int) -> str:
    source_id = f"{message_id}:{_slug(company)}"
    return source_id if occurrence == 1 else f"{source_id}:{occurrence}"


def _confidence(value: Any) -> int:
    try:
        return max(0, min(100, int(round(float(value)))))
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE


def _deadline(value: Any) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


@dataclass
class EmailScanResult:
    emails_scanned: int = 0
    candidates: list[OpportunityCandidate] = field(default_factory=list)


class EmailSource(BaseSource):
    """
    Scans the connected mailbox. Raises EmailNotConnectedError when the user
    has no stored grant, or when an expired token cannot be refreshed.
    """

    source_type = SourceType.EMAIL

    def __init__(
        self,
        profile_store: ProfileStore,
        gmail: GmailClient,
        classifier: Optional[EmailClassifier],
    ):
        self.profile_store = profile_store
        self.gmail = gmail
        self.classifier = classifier

    async def search(self, profile: UserProfile) -> list[OpportunityCandidate]:
        return (await self.scan(profile)).candidates

    async def scan(self, profile: UserProfile) -> EmailScanResult:
        credentials = self.profile_store.get_email_tokens(profile.user_id)
        if credentials is None:
            raise EmailNotConnectedError(f"Email not connected for {profile.user_id}")
        if self.classifier is None:
            raise UpstreamError("Email classification unavailable: no reasoning service configured", transient=False)

        try:
            messages = await self.gmail.search_money_emails(credentials.access_token)
        except UpstreamError as e:
            if e.status_code != 401:
                raise
            access_token = await self._refresh(profile.user_id, credentials.refresh_token)
            messages = await self.gmail.search_money_emails(access_token)

        candidates: list[OpportunityCandidate] = []
        for message in messages:
            try:
                opportunities = await self.classifier.classify(message)
            except Exception as e:
                logger.warning("Classifier failed for message %s: %s", message.id, e)
                continue
            seen: dict[str, int] = {}
            for opportunity in opportunities:
                company = _slug(str(opportunity.get("company") or message.sender or "Unknown"))
                seen[company] = seen.get(company, 0) + 1
                candidates.append(self._to_candidate(message, opportunity, seen[company]))

        logger.info(
            "Email: %d opportunities in %d messages for %s",
            len(candidates),
            len(messages),
            profile.user_id,
        )
        return EmailScanResult(emails_scanned=len(messages), candidates=candidates)

    async def _refresh(self, user_id: str, refresh_token: Optional[str]) -> str:
        if not refresh_token:
            raise EmailNotConnectedError(f"Email access expired for {user_id} and no refresh token is stored")
        try:
            access_token = await self.gmail.refresh_access_token(refresh_token)
        except UpstreamError as e:
            raise EmailNotConnectedError(f"Email access expired for {user_id}: {e}") from e
        self.profile_store.set_email_tokens(user_id, access_token)
        logger.info("Refreshed email access token for %s", user_id)
        return access_token

    def _to_candidate(
        self,
        message: EmailMessage,
        opportunity: dict[str, Any],
        occurrence: int = 1,
    ) -> OpportunityCandidate:
        """``occurrence`` counts repeats of the same company within one message."""
        company = str(opportunity.get("company") or message.sender or "Unknown")
        amount_text = opportunity.get("amount")
        amount_text = str(amount_text) if amount_text is not None else None
        confidence = _confidence(opportunity.get("confidence", DEFAULT_CONFIDENCE))
        return OpportunityCandidate(
            source_type=SourceType.EMAIL,
            company=company,
            description=str(opportunity.get("description") or message.subject),
            amount_text=amount_text,
            amount=parse_amount(amount_text),
            deadline=_deadline(opportunity.get("deadline")),
            match_score=confidence,
            eligibility_reasons=[f"Found in email: {message.subject}"] if message.subject else [],
            likely_eligible=True,
            raw_source_id=_email_source_id(message.id, company, occurrence),
            payload=EmailPayload(
                message_id=message.id,
                subject=message.subject,
                sender=message.sender,
                sent_at=message.sent_at or None,
                opportunity_type=str(opportunity.get("type") or "other"),
                action_required=opportunity.get("action_required"),
            ),
        )
