"""LLM-based match scoring via the structured-output reasoning service."""

from found_money.errors import ScoringError, UpstreamError
from found_money.llm import OPPORTUNITY_MATCHING_PROMPT, StructuredLLM, dump_for_prompt
from found_money.models.candidate import MatchScore, OpportunityCandidate
from found_money.models.profile import UserProfile

from .base import MatchScorer


def candidate_view(candidate: OpportunityCandidate) -> dict:
    """Candidate fields the model sees (no internal scoring state)."""
    return candidate.model_dump(
        mode="json",
        exclude={"match_score", "eligibility_reasons", "likely_eligible", "amount"},
    )


def _parse_match(data: dict) -> MatchScore:
    """Coerce model JSON into MatchScore; missing or odd values fall back to neutral."""
    try:
        score = int(round(float(data.get("score", 50))))
    except (TypeError, ValueError):
        score = 50
    reasons = data.get("reasons") or []
    if isinstance(reasons, str):
        reasons = [reasons]
    return MatchScore(
        score=max(0, min(100, score)),
        reasons=[str(r) for r in reasons][:10],
        eligible=bool(data.get("likely_eligible", score > 50)),
    )


class LLMMatchScorer(MatchScorer):
    """One structured request per candidate; primary then fallback model."""

    name = "llm"

    def __init__(self, llm: StructuredLLM):
        self._llm = llm

    async def score(self, profile: UserProfile, candidate: OpportunityCandidate) -> MatchScore:
        content = "\n\n".join(
            [
                dump_for_prompt("User Profile", profile.matching_view()),
                dump_for_prompt("Opportunity", candidate_view(candidate)),
            ]
        )
        try:
            data = await self._llm.complete_json(OPPORTUNITY_MATCHING_PROMPT, content)
        except UpstreamError as e:
            raise ScoringError(f"Could not score {candidate.raw_source_id}: {e}") from e
        return _parse_match(data)
