"""Top-N ranking of candidates, AI judgment first with a deterministic fallback."""

from __future__ import annotations

import json
import math
from collections.abc import Sequence

import pydantic

from src.discovery.errors import ProviderError
from src.discovery.fallback import Strategy, first_success
from src.discovery.judge import GenerativeJudge, parse_json_reply
from src.discovery.prompts import RANKING_PROMPT
from src.shared.geo import distance_km
from src.shared.logging import get_logger, get_tracer
from src.shared.models import (
    MAX_RECOMMENDATIONS,
    CandidateRecord,
    GeoPoint,
    Recommendation,
    SearchResult,
)

logger = get_logger(__name__)
_tracer = get_tracer(__name__)

DETERMINISTIC_REASON = "Ranked by distance, then price, then rating."


def _finite_or(value: float | None, default: float) -> float:
    if value is None or not math.isfinite(value):
        return default
    return value


def _sort_key(distance: float, candidate: CandidateRecord) -> tuple[float, float, float]:
    """Ascending distance, ascending price (missing last), descending rating."""
    return (
        distance,
        _finite_or(candidate.price, math.inf),
        -_finite_or(candidate.rating, 0.0),
    )


def rank_deterministically(
    candidates: Sequence[CandidateRecord],
    query_term: str,
    location: GeoPoint,
) -> SearchResult:
    """Nearest first, then cheapest, then best rated. No external calls."""
    scored = [(distance_km(location, c.shop_location), c) for c in candidates]
    scored.sort(key=lambda pair: _sort_key(*pair))

    recommendations = [
        Recommendation(
            rank=rank,
            product_name=candidate.product_name,
            price=candidate.price if candidate.price is not None and math.isfinite(candidate.price) else None,
            rating=_finite_or(candidate.rating, 0.0),
            shop_name=candidate.shop_name,
            shop_contact=candidate.shop_contact,
            shop_email=candidate.shop_email,
            distance_km=round(distance, 2) if math.isfinite(distance) else None,
            reason=DETERMINISTIC_REASON,
        )
        for rank, (distance, candidate) in enumerate(scored[:MAX_RECOMMENDATIONS], start=1)
    ]
    summary = (
        f'Top {len(recommendations)} results for "{query_term}" near you '
        "based on distance, price, and rating."
    )
    return SearchResult(summary=summary, recommendations=recommendations)


def build_ranking_prompt(
    candidates: Sequence[CandidateRecord],
    query_term: str,
    location: GeoPoint,
) -> str:
    context = []
    for c in candidates:
        distance = distance_km(location, c.shop_location)
        context.append({
            "product_name": c.product_name,
            "price": c.price,
            "rating": c.rating,
            "shop_name": c.shop_name,
            "shop_contact": c.shop_contact,
            "shop_email": c.shop_email,
            "distance_km": round(distance, 2) if math.isfinite(distance) else None,
        })
    return RANKING_PROMPT.format(
        query=query_term,
        candidates=json.dumps(context, ensure_ascii=False),
        limit=MAX_RECOMMENDATIONS,
    )


def parse_ranking_reply(text: str, candidate_count: int = 0) -> SearchResult:
    """Validate a model reply against :class:`SearchResult`.

    Recommendations keep the model's order, are capped at three and are
    renumbered from 1 so ranks are always contiguous. An empty list is
    rejected when *candidate_count* candidates were offered.
    """
    payload = parse_json_reply(text)
    if not isinstance(payload, dict):
        raise ProviderError("Ranking reply is not a JSON object")

    items = payload.get("recommendations")
    if not isinstance(items, list):
        raise ProviderError("Ranking reply has no recommendations list")
    if not items and candidate_count:
        raise ProviderError(f"Ranking reply picked nothing from {candidate_count} candidates")

    renumbered = []
    for rank, item in enumerate(items[:MAX_RECOMMENDATIONS], start=1):
        if not isinstance(item, dict):
            raise ProviderError("Ranking reply contains a non-object recommendation")
        renumbered.append({**item, "rank": rank})

    try:
        return SearchResult.model_validate(
            {"summary": payload.get("summary"), "recommendations": renumbered}
        )
    except pydantic.ValidationError as exc:
        raise ProviderError(f"Ranking reply does not match the result schema: {exc}") from exc


class RankingEngine:
    def __init__(self, judge: GenerativeJudge | None = None) -> None:
        self._judge = judge

    async def rank(
        self,
        candidates: Sequence[CandidateRecord],
        query_term: str,
        location: GeoPoint,
        prefer_local_ranking: bool = False,
    ) -> SearchResult:
        """Return at most three recommendations; never raises on AI failure."""

        async def ask_judge() -> SearchResult | None:
            if self._judge is None:
                return None
            reply = await self._judge.complete(build_ranking_prompt(candidates, query_term, location))
            return parse_ranking_reply(reply, candidate_count=len(candidates))

        async def deterministic() -> SearchResult:
            return rank_deterministically(candidates, query_term, location)

        strategies: list[Strategy[SearchResult]] = []
        if not prefer_local_ranking:
            strategies.append(Strategy("ai_judgment", ask_judge))
        strategies.append(Strategy("deterministic", deterministic))

        with _tracer.start_as_current_span(
            "rank_candidates",
            attributes={"candidate_count": len(candidates), "query": query_term},
        ):
            outcome = await first_success(strategies, operation="ranking")

        if outcome is None:
            # Reached only when the deterministic strategy raised
            return rank_deterministically(candidates, query_term, location)
        logger.info("Ranked %d candidates via %s", len(candidates), outcome.strategy)
        return outcome.value
