"""Tests for match scoring: scorers, threshold, ranking and failure handling."""

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from found_money.errors import ScoringError, UpstreamError
from found_money.llm import StructuredLLM, extract_json
from found_money.models.candidate import MatchScore, SourceType
from found_money.models.profile import Address, UserProfile
from found_money.scoring import (
    NEUTRAL_SCORE,
    CachingMatchScorer,
    HeuristicMatchScorer,
    LLMMatchScorer,
    MatchScorer,
    build_scorer,
    score_candidates,
)
from found_money.store import ScoreCacheStore

from conftest import FakeLLM, make_candidate


class _FixedScorer(MatchScorer):
    """Scores by raw_source_id lookup; raises for ids mapped to an exception."""

    name = "fixed"

    def __init__(self, scores: dict):
        self.scores = scores
        self.calls = 0

    async def score(self, profile, candidate):
        self.calls += 1
        value = self.scores[candidate.raw_source_id]
        if isinstance(value, Exception):
            raise value
        return MatchScore(score=value, reasons=[f"scored {value}"])


def _completion(content: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class _FakeOpenAI:
    """Minimal AsyncOpenAI stand-in: per-model queued outcomes."""

    def __init__(self, outcomes: dict):
        self.outcomes = outcomes
        self.models: list[str] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, *, model, messages, temperature, response_format):
        self.models.append(model)
        outcome = self.outcomes[model]
        if isinstance(outcome, Exception):
            raise outcome
        return _completion(outcome)


_OPENAI_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


class TestScoreCandidates:
    """Threshold, ranking and neutral fallback."""

    def test_threshold_is_strictly_above_30(self, profile: UserProfile) -> None:
        candidates = [make_candidate(source_id=i) for i in ("a", "b", "c")]
        scorer = _FixedScorer({"a": 30, "b": 31, "c": 0})
        result = asyncio.run(score_candidates(profile, candidates, scorer))
        assert [c.raw_source_id for c in result] == ["b"]

    def test_sorted_by_score_then_amount_upper(self, profile: UserProfile) -> None:
        candidates = [
            make_candidate(source_id="low-amount", amount_text="$5-$12"),
            make_candidate(source_id="high-amount", amount_text="$20-$500"),
            make_candidate(source_id="top", amount_text="$1"),
            make_candidate(source_id="unknown", amount_text="Unknown"),
        ]
        scorer = _FixedScorer({"low-amount": 70, "high-amount": 70, "top": 90, "unknown": 70})
        result = asyncio.run(score_candidates(profile, candidates, scorer))
        assert [c.raw_source_id for c in result] == ["top", "high-amount", "low-amount", "unknown"]

    def test_scoring_failure_gives_neutral_score(self, profile: UserProfile) -> None:
        """A failed scoring keeps the candidate at the neutral score."""
        candidates = [make_candidate(source_id="ok"), make_candidate(source_id="broken")]
        scorer = _FixedScorer({"ok": 80, "broken": ScoringError("both models down")})
        result = asyncio.run(score_candidates(profile, candidates, scorer))
        by_id = {c.raw_source_id: c for c in result}
        assert by_id["broken"].match_score == NEUTRAL_SCORE == 50
        assert "review eligibility manually" in by_id["broken"].eligibility_reasons[0]
        assert by_id["ok"].match_score == 80

    def test_sequential_one_call_per_candidate(self, profile: UserProfile) -> None:
        candidates = [make_candidate(source_id=str(i)) for i in range(5)]
        scorer = _FixedScorer({str(i): 60 for i in range(5)})
        asyncio.run(score_candidates(profile, candidates, scorer))
        assert scorer.calls == 5


class TestHeuristicMatchScorer:
    def test_interest_boost(self, profile: UserProfile) -> None:
        candidate = make_candidate(company="Meta (Facebook)", eligibility="Any US Facebook user")
        result = asyncio.run(HeuristicMatchScorer().score(profile, candidate))
        assert result.score == 60
        assert "Uses Facebook" in result.reasons

    def test_residency_requirement_not_met(self, profile: UserProfile) -> None:
        """Illinois-only settlement for a CA/NY user drops below the threshold."""
        candidate = make_candidate(company="TikTok", eligibility="Illinois residents who used TikTok")
        result = asyncio.run(HeuristicMatchScorer().score(profile, candidate))
        assert result.score == 25
        assert result.eligible is False

    def test_residency_requirement_met(self) -> None:
        profile = UserProfile(user_id="u", addresses=[Address(state="IL")])
        candidate = make_candidate(company="TikTok", eligibility="Illinois residents who used TikTok")
        result = asyncio.run(HeuristicMatchScorer().score(profile, candidate))
        assert result.score == 65

    def test_property_owner_and_jurisdiction(self, profile: UserProfile) -> None:
        candidate = make_candidate(SourceType.PROPERTY, source_id="CA:1", owner_name="JANE DOE", jurisdiction="CA")
        result = asyncio.run(HeuristicMatchScorer().score(profile, candidate))
        assert result.score == 90


class TestLLMMatchScorer:
    def test_parses_and_clamps(self, profile: UserProfile) -> None:
        llm = FakeLLM({"score": 140, "reasons": "Uses Facebook", "likely_eligible": True})
        result = asyncio.run(LLMMatchScorer(llm).score(profile, make_candidate()))
        assert result.score == 100
        assert result.reasons == ["Uses Facebook"]

    def test_prompt_excludes_contact_details(self, profile: UserProfile) -> None:
        llm = FakeLLM({"score": 70})
        asyncio.run(LLMMatchScorer(llm).score(profile, make_candidate()))
        content = llm.calls[0][1]
        assert "Facebook" in content
        assert "jane@example.com" not in content
        assert "555-0100" not in content

    def test_upstream_error_becomes_scoring_error(self, profile: UserProfile) -> None:
        llm = FakeLLM(UpstreamError("down", transient=True))
        with pytest.raises(ScoringError):
            asyncio.run(LLMMatchScorer(llm).score(profile, make_candidate()))


class TestStructuredLLM:
    """Primary/fallback model behaviour."""

    def test_primary_success(self) -> None:
        client = _FakeOpenAI({"primary": '{"score": 80}'})
        llm = StructuredLLM(client, primary_model="primary", fallback_model="fallback")
        assert asyncio.run(llm.complete_json("sys", "user")) == {"score": 80}
        assert client.models == ["primary"]

    def test_falls_back_on_bad_output(self) -> None:
        client = _FakeOpenAI({"primary": "not json at all", "fallback": '{"score": 40}'})
        llm = StructuredLLM(client, primary_model="primary", fallback_model="fallback")
        assert asyncio.run(llm.complete_json("sys", "user")) == {"score": 40}
        assert client.models == ["primary", "fallback"]

    def test_falls_back_on_connection_error(self) -> None:
        client = _FakeOpenAI(
            {"primary": openai.APIConnectionError(request=_OPENAI_REQUEST), "fallback": '{"score": 55}'}
        )
        llm = StructuredLLM(client, primary_model="primary", fallback_model="fallback")
        assert asyncio.run(llm.complete_json("sys", "user")) == {"score": 55}

    def test_authentication_error_skips_fallback(self) -> None:
        error = openai.AuthenticationError(
            "bad key", response=httpx.Response(401, request=_OPENAI_REQUEST), body=None
        )
        client = _FakeOpenAI({"primary": error, "fallback": '{"score": 55}'})
        llm = StructuredLLM(client, primary_model="primary", fallback_model="fallback")
        with pytest.raises(UpstreamError) as exc_info:
            asyncio.run(llm.complete_json("sys", "user"))
        assert exc_info.value.status_code == 401
        assert client.models == ["primary"]

    def test_both_fail(self) -> None:
        client = _FakeOpenAI({"primary": "nope", "fallback": "still nope"})
        llm = StructuredLLM(client, primary_model="primary", fallback_model="fallback")
        with pytest.raises(UpstreamError):
            asyncio.run(llm.complete_json("sys", "user"))

    def test_extract_json_from_fenced_text(self) -> None:
        assert extract_json('```json\n{"found": false}\n```') == {"found": False}


class TestCachingMatchScorer:
    def test_unchanged_pair_scored_once(self, profile: UserProfile, temp_db) -> None:
        store = ScoreCacheStore(temp_db)
        inner = _FixedScorer({"a": 77})
        scorer = CachingMatchScorer(inner, store)
        candidate = make_candidate(source_id="a")
        first = asyncio.run(scorer.score(profile, candidate))
        second = asyncio.run(scorer.score(profile, candidate))
        assert first == second
        assert inner.calls == 1
        assert store.count() == 1

    def test_changed_profile_rescored(self, profile: UserProfile, temp_db) -> None:
        inner = _FixedScorer({"a": 77})
        scorer = CachingMatchScorer(inner, ScoreCacheStore(temp_db))
        candidate = make_candidate(source_id="a")
        asyncio.run(scorer.score(profile, candidate))
        asyncio.run(scorer.score(profile.model_copy(update={"interests": ["Apple"]}), candidate))
        assert inner.calls == 2

    def test_failures_not_cached(self, profile: UserProfile, temp_db) -> None:
        store = ScoreCacheStore(temp_db)
        scorer = CachingMatchScorer(_FixedScorer({"a": ScoringError("down")}), store)
        with pytest.raises(ScoringError):
            asyncio.run(scorer.score(profile, make_candidate(source_id="a")))
        assert store.count() == 0


class TestBuildScorer:
    def test_heuristic_without_key(self, settings) -> None:
        assert build_scorer(settings).name == "heuristic"

    def test_llm_with_key_and_cache(self, settings, temp_db) -> None:
        scorer = build_scorer(settings, cache_store=ScoreCacheStore(temp_db), llm=FakeLLM({"score": 1}))
        assert scorer.name == "cached-llm"
