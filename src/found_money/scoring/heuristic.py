"""Deterministic scorer used when no reasoning service is configured."""

from found_money.matching import keyword_matches, names_match
from found_money.models.candidate import (
    CatalogPayload,
    EmailPayload,
    MatchScore,
    OpportunityCandidate,
    PropertyPayload,
)
from found_money.models.profile import UserProfile
from found_money.states import US_STATES

from .base import MatchScorer


class HeuristicMatchScorer(MatchScorer):
    """Small cumulative boosts around a neutral 50."""

    name = "heuristic"

    async def score(self, profile: UserProfile, candidate: OpportunityCandidate) -> MatchScore:
        payload = candidate.payload
        if isinstance(payload, CatalogPayload):
            score, reasons, eligible = self._score_settlement(profile, candidate, payload)
        elif isinstance(payload, PropertyPayload):
            score, reasons, eligible = self._score_property(profile, payload)
        elif isinstance(payload, EmailPayload):
            score, reasons, eligible = 70, ["Found in the user's own mailbox"], True
        else:
            raise TypeError(f"Unhandled payload kind: {payload.kind}")
        return MatchScore(
            score=max(0, min(100, score)),
            reasons=reasons or ["Heuristic match (no reasoning service configured)"],
            eligible=eligible,
        )

    def _score_settlement(
        self, profile: UserProfile, candidate: OpportunityCandidate, payload: CatalogPayload
    ) -> tuple[int, list[str], bool]:
        score = 50
        reasons: list[str] = []
        eligible = True
        text = " ".join(
            [candidate.company, candidate.description, payload.title, " ".join(payload.categories)]
        )

        # +10 per interest mentioned, max 3
        matches = 0
        for interest in profile.interests[:30]:
            if matches >= 3:
                break
            if keyword_matches(text, interest):
                score += 10
                matches += 1
                reasons.append(f"Uses {interest}")

        # Residency-restricted settlements
        eligibility = payload.eligibility or ""
        user_states = set(profile.states())
        named = {code for code, name in US_STATES.items() if keyword_matches(eligibility, name)}
        if named:
            if named & user_states:
                score += 15
                reasons.append("Lives in an eligible state")
            elif user_states:
                score -= 25
                eligible = False
                reasons.append("Residency requirement not met")
        return score, reasons, eligible

    def _score_property(self, profile: UserProfile, payload: PropertyPayload) -> tuple[int, list[str], bool]:
        score = 60
        reasons: list[str] = []
        if names_match(payload.owner_name, profile.full_name()):
            score += 20
            reasons.append("Owner name matches")
        if payload.jurisdiction in profile.states():
            score += 10
            reasons.append(f"Has lived in {payload.jurisdiction}")
        return score, reasons, True
