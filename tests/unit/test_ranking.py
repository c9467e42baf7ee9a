"""Unit tests for candidate ranking."""

from __future__ import annotations

import json
import math
from unittest.mock import AsyncMock

import pytest

from src.discovery.errors import ProviderError
from src.discovery.ranking import (
    DETERMINISTIC_REASON,
    RankingEngine,
    build_ranking_prompt,
    parse_ranking_reply,
    rank_deterministically,
)
from src.shared.models import CandidateRecord, GeoPoint, SearchResult

USER = GeoPoint(latitude=12.9716, longitude=77.5946)
NEAR = GeoPoint(latitude=12.9726, longitude=77.5946)   # ~0.11 km
FAR = GeoPoint(latitude=12.9916, longitude=77.5946)    # ~2.2 km


def _candidate(
    name: str,
    price: float | None = 100.0,
    rating: float | None = 4.0,
    location: GeoPoint | None = NEAR,
    shop: str = "Corner Cafe",
) -> CandidateRecord:
    return CandidateRecord(
        product_name=name,
        price=price,
        rating=rating,
        shop_name=shop,
        shop_contact="9876543210",
        shop_email="hello@corner.cafe",
        shop_location=location,
    )


def _ai_reply(count: int = 2) -> str:
    return json.dumps({
        "summary": "Great picks nearby.",
        "recommendations": [
            {
                "rank": i,
                "product_name": f"Burger {i}",
                "price": 100 + i,
                "rating": 4.5,
                "shop_name": "Corner Cafe",
                "reason": "Cheap and tasty.",
            }
            for i in range(1, count + 1)
        ],
    })


# ---------------------------------------------------------------------------
# Deterministic ranking
# ---------------------------------------------------------------------------

class TestRankDeterministically:
    def test_length_and_contiguous_ranks(self):
        for n in range(0, 6):
            candidates = [_candidate(f"Item {i}") for i in range(n)]
            result = rank_deterministically(candidates, "item", USER)
            assert len(result.recommendations) == min(3, n)
            assert [r.rank for r in result.recommendations] == list(range(1, min(3, n) + 1))

    def test_nearest_first(self):
        result = rank_deterministically(
            [_candidate("Far", price=10, location=FAR), _candidate("Near", price=500, location=NEAR)],
            "burger", USER,
        )
        assert [r.product_name for r in result.recommendations] == ["Near", "Far"]

    def test_equal_distance_cheaper_first(self):
        result = rank_deterministically(
            [_candidate("Pricey", price=200), _candidate("Cheap", price=90)], "burger", USER,
        )
        assert [r.product_name for r in result.recommendations] == ["Cheap", "Pricey"]

    def test_equal_distance_and_price_higher_rating_first(self):
        result = rank_deterministically(
            [_candidate("Okay", rating=3.1), _candidate("Loved", rating=4.9)], "burger", USER,
        )
        assert [r.product_name for r in result.recommendations] == ["Loved", "Okay"]

    def test_missing_price_ranks_last_and_reports_none(self):
        result = rank_deterministically(
            [_candidate("Unknown", price=None), _candidate("Priced", price=999)], "burger", USER,
        )
        assert [r.product_name for r in result.recommendations] == ["Priced", "Unknown"]
        assert result.recommendations[1].price is None

    def test_missing_rating_treated_as_zero(self):
        result = rank_deterministically(
            [_candidate("Unrated", rating=None), _candidate("Rated", rating=1.0)], "burger", USER,
        )
        assert [r.product_name for r in result.recommendations] == ["Rated", "Unrated"]
        assert result.recommendations[1].rating == 0.0

    def test_unlocated_shop_sorts_last_with_null_distance(self):
        result = rank_deterministically(
            [_candidate("Nowhere", price=1, location=None), _candidate("Far", location=FAR)], "burger", USER,
        )
        assert [r.product_name for r in result.recommendations] == ["Far", "Nowhere"]
        assert result.recommendations[1].distance_km is None

    def test_distance_rounded_and_reason_fixed(self):
        result = rank_deterministically([_candidate("Near")], "burger", USER)
        rec = result.recommendations[0]
        assert rec.distance_km == round(rec.distance_km, 2)
        assert rec.distance_km == pytest.approx(0.11, abs=0.01)
        assert rec.reason == DETERMINISTIC_REASON
        assert rec.shop_contact == "9876543210"
        assert rec.shop_email == "hello@corner.cafe"

    def test_summary_names_query_and_count(self):
        result = rank_deterministically([_candidate("A"), _candidate("B")], "Dosa", USER)
        assert result.summary == 'Top 2 results for "Dosa" near you based on distance, price, and rating.'

    def test_stable_for_full_ties(self):
        candidates = [_candidate(f"Twin {i}") for i in range(3)]
        result = rank_deterministically(candidates, "twin", USER)
        assert [r.product_name for r in result.recommendations] == ["Twin 0", "Twin 1", "Twin 2"]


# ---------------------------------------------------------------------------
# AI reply parsing
# ---------------------------------------------------------------------------

class TestParseRankingReply:
    def test_valid_reply(self):
        result = parse_ranking_reply(_ai_reply(2))
        assert result.summary == "Great picks nearby."
        assert [r.rank for r in result.recommendations] == [1, 2]

    def test_fenced_reply(self):
        result = parse_ranking_reply(f"```json\n{_ai_reply(1)}\n```")
        assert len(result.recommendations) == 1

    def test_caps_at_three_and_renumbers(self):
        payload = json.loads(_ai_reply(5))
        for item, rank in zip(payload["recommendations"], (4, 4, 9, 1, 2)):
            item["rank"] = rank
        result = parse_ranking_reply(json.dumps(payload))
        assert [r.rank for r in result.recommendations] == [1, 2, 3]
        assert [r.product_name for r in result.recommendations] == ["Burger 1", "Burger 2", "Burger 3"]

    @pytest.mark.parametrize(
        "reply",
        [
            "not json at all",
            "[1, 2, 3]",
            json.dumps({"summary": "no list"}),
            json.dumps({"recommendations": []}),
            json.dumps({"summary": "bad item", "recommendations": ["Burger"]}),
            json.dumps({"summary": "missing shop", "recommendations": [{"product_name": "Burger"}]}),
        ],
    )
    def test_malformed_replies_raise_provider_error(self, reply):
        with pytest.raises(ProviderError):
            parse_ranking_reply(reply)

    def test_empty_pick_rejected_when_candidates_offered(self):
        reply = json.dumps({"summary": "Nothing good.", "recommendations": []})
        with pytest.raises(ProviderError):
            parse_ranking_reply(reply, candidate_count=1)

    def test_empty_pick_accepted_without_candidates(self):
        reply = json.dumps({"summary": "Nothing nearby.", "recommendations": []})
        assert parse_ranking_reply(reply).recommendations == []


def test_prompt_contains_candidates_and_query():
    prompt = build_ranking_prompt([_candidate("Paneer Roll"), _candidate("Lost", location=None)], "Roll", USER)
    assert '"Roll"' in prompt
    assert "Paneer Roll" in prompt
    assert '"distance_km": null' in prompt
    assert "top 3" in prompt


# ---------------------------------------------------------------------------
# RankingEngine
# ---------------------------------------------------------------------------

class TestRankingEngine:
    @pytest.mark.asyncio
    async def test_uses_ai_reply_when_valid(self):
        judge = AsyncMock()
        judge.complete.return_value = _ai_reply(2)
        result = await RankingEngine(judge).rank([_candidate("A")], "burger", USER)
        assert result.summary == "Great picks nearby."
        judge.complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_malformed_ai_reply_equals_deterministic(self):
        judge = AsyncMock()
        judge.complete.return_value = "I think the cheapest burger is best!"
        candidates = [_candidate("A", price=120), _candidate("B", price=80, location=FAR), _candidate("C", price=60)]
        result = await RankingEngine(judge).rank(candidates, "burger", USER)
        assert result == rank_deterministically(candidates, "burger", USER)

    @pytest.mark.asyncio
    async def test_provider_error_falls_back(self):
        judge = AsyncMock()
        judge.complete.side_effect = ProviderError("quota")
        result = await RankingEngine(judge).rank([_candidate("A")], "burger", USER)
        assert result.recommendations[0].reason == DETERMINISTIC_REASON

    @pytest.mark.asyncio
    async def test_prefer_local_ranking_skips_ai(self):
        judge = AsyncMock()
        result = await RankingEngine(judge).rank([_candidate("A")], "burger", USER, prefer_local_ranking=True)
        judge.complete.assert_not_awaited()
        assert result.recommendations[0].reason == DETERMINISTIC_REASON

    @pytest.mark.asyncio
    async def test_without_judge_is_deterministic(self):
        result = await RankingEngine(None).rank([_candidate("A")], "burger", USER)
        assert result.recommendations[0].reason == DETERMINISTIC_REASON

    @pytest.mark.asyncio
    async def test_both_paths_share_schema(self):
        judge = AsyncMock()
        judge.complete.return_value = _ai_reply(3)
        ai = await RankingEngine(judge).rank([_candidate("A")], "burger", USER)
        local = await RankingEngine(None).rank([_candidate("A")], "burger", USER)

        for result in (ai, local):
            dumped = result.model_dump()
            assert SearchResult.model_validate(dumped) == result
            assert set(dumped) == {"summary", "recommendations"}
        assert set(ai.recommendations[0].model_dump()) == set(local.recommendations[0].model_dump())
        assert not math.isnan(local.recommendations[0].distance_km)

    @pytest.mark.asyncio
    async def test_empty_ai_pick_falls_back_to_deterministic(self):
        judge = AsyncMock()
        judge.complete.return_value = json.dumps({"summary": "Nothing good.", "recommendations": []})
        candidates = [_candidate("A")]
        result = await RankingEngine(judge).rank(candidates, "burger", USER)
        assert result == rank_deterministically(candidates, "burger", USER)

    @pytest.mark.asyncio
    async def test_deterministic_failure_propagates(self, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("sort failed")

        monkeypatch.setattr("src.discovery.ranking.rank_deterministically", broken)
        with pytest.raises(RuntimeError, match="sort failed"):
            await RankingEngine(None).rank([_candidate("A")], "burger", USER)
