"""Structured-output calls to the reasoning service (OpenAI chat completions).

Every call goes to the primary model first. Any failure other than an
authentication error is retried once against the fallback model.
"""

import json
import logging
import re
from typing import Any, Optional

from openai import APIStatusError, AsyncOpenAI, AuthenticationError, OpenAIError

from found_money.config import Settings
from found_money.errors import UpstreamError

logger = logging.getLogger(__name__)

OPPORTUNITY_MATCHING_PROMPT = """You match people to unclaimed-money opportunities.
Score how relevant the opportunity is to the user on a 0-100 scale, considering
location, time period, products or services the user is likely to have used,
and demographic fit. Reply with ONLY a JSON object:
{"score": <0-100>, "reasons": ["..."], "likely_eligible": true|false}"""

EMAIL_ANALYSIS_PROMPT = """You find money owed to the reader of an email: refunds,
rebates, class action settlements, price-drop refunds, insurance claims,
subscription refunds and overcharges. Reply with ONLY a JSON object:
{"found": true|false, "opportunities": [{"type": "refund|rebate|settlement|price_drop|insurance|subscription|overcharge|other",
"company": "...", "amount": "amount as written or 'Unknown'", "description": "...",
"action_required": "...", "deadline": "YYYY-MM-DD or null", "confidence": <0-100>}]}"""

FORM_FILLING_PROMPT = """You fill out claim forms using only the user information given.
Never invent values; use null when the information is missing.
Reply with ONLY a JSON object mapping each form field name to its value."""


def extract_json(text: str) -> dict[str, Any]:
    """Parse a JSON object from model output, tolerating markdown fences or prose."""
    text = (text or "").strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", text, re.DOTALL)
        if not match:
            raise ValueError("No JSON object in model response")
        data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Model response is not a JSON object")
    return data


class StructuredLLM:
    """JSON-object completions with primary/fallback model support."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        primary_model: str = "gpt-4o-mini",
        fallback_model: str = "gpt-4o",
        temperature: float = 0.3,
    ):
        self._client = client
        self.primary_model = primary_model
        self.fallback_model = fallback_model
        self.temperature = temperature

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["StructuredLLM"]:
        """Build from settings; None when no API key is configured."""
        if not settings.openai_api_key:
            return None
        return cls(
            AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.request_timeout_seconds, max_retries=0),
            primary_model=settings.llm_primary_model,
            fallback_model=settings.llm_fallback_model,
            temperature=settings.llm_temperature,
        )

    async def _invoke(self, model: str, system_prompt: str, user_content: str) -> dict[str, Any]:
        response = await self._client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            temperature=self.temperature,
            response_format={"type": "json_object"},
        )
        return extract_json(response.choices[0].message.content or "")

    async def complete_json(self, system_prompt: str, user_content: str) -> dict[str, Any]:
        """
        Return the parsed JSON object. Raises UpstreamError when the primary
        fails with an authentication error, or when both models fail.
        """
        try:
            return await self._invoke(self.primary_model, system_prompt, user_content)
        except AuthenticationError as e:
            raise UpstreamError(f"Reasoning service rejected credentials: {e}", transient=False, status_code=401) from e
        except (OpenAIError, ValueError) as e:
            logger.warning("Primary model %s failed, trying fallback %s: %s", self.primary_model, self.fallback_model, e)

        try:
            return await self._invoke(self.fallback_model, system_prompt, user_content)
        except (OpenAIError, ValueError) as e:
            status = e.status_code if isinstance(e, APIStatusError) else None
            raise UpstreamError(
                f"Fallback model {self.fallback_model} failed: {e}",
                transient=status is None or status >= 500,
                status_code=status,
            ) from e


def dump_for_prompt(label: str, data: Any) -> str:
    return f"{label}:\n{json.dumps(data, indent=2, default=str)}"
