"""Discovery service: the entry points used by the HTTP layer.

Workflow for a search:
1. Resolve the image to a term (image searches only)
2. Retrieve nearby shops and their matching products
3. Rank the candidates (AI judgment or deterministic)
4. Assemble the response
"""

from __future__ import annotations

from src.discovery.errors import ValidationError
from src.discovery.ranking import RankingEngine
from src.discovery.response import assemble
from src.discovery.retriever import CandidateRetriever
from src.discovery.trend import (
    HISTORY_LIMIT,
    ExternalPriceSource,
    PriceHistoryStore,
    TrendAdvisor,
)
from src.discovery.vision import ImageIntent, ImageIntentResolver
from src.shared.logging import get_logger, get_tracer
from src.shared.models import GeoPoint, ImageSearchResponse, SearchResult, TrendVerdict

logger = get_logger(__name__)
_tracer = get_tracer(__name__)


class DiscoveryService:
    """Stateless between calls; every collaborator is injected."""

    def __init__(
        self,
        retriever: CandidateRetriever,
        ranker: RankingEngine,
        resolver: ImageIntentResolver,
        advisor: TrendAdvisor,
        price_history: PriceHistoryStore,
        external_prices: ExternalPriceSource,
        *,
        default_image_term: str = "Burger",
        prefer_local_ranking: bool = False,
    ) -> None:
        self._retriever = retriever
        self._ranker = ranker
        self._resolver = resolver
        self._advisor = advisor
        self._price_history = price_history
        self._external_prices = external_prices
        self._default_image_term = default_image_term
        self._prefer_local_ranking = prefer_local_ranking

    async def search(self, term: str, location: GeoPoint | None) -> SearchResult:
        term = (term or "").strip()
        if not term:
            raise ValidationError("A search query is required.")
        if location is None:
            raise ValidationError("latitude and longitude are required.")
        return await self._search(term, location)

    async def resolve_image(self, image: bytes, mime_type: str) -> ImageIntent:
        return await self._resolver.resolve(image, mime_type)

    async def search_by_image(
        self, image: bytes, mime_type: str, location: GeoPoint | None,
    ) -> ImageSearchResponse:
        if not image:
            raise ValidationError("An image is required.")
        if location is None:
            raise ValidationError("latitude and longitude are required.")

        intent = await self._resolver.resolve(image, mime_type)
        term = intent.term or self._default_image_term
        if intent.term is None:
            logger.info("Image not recognised, searching for default term '%s'", term)

        result = await self._search(term, location)
        return assemble(result, detected_label=intent.term, predictions=intent.diagnostics)

    async def trend(self, product_name: str) -> TrendVerdict:
        product_name = (product_name or "").strip()
        if not product_name:
            raise ValidationError("A product name is required.")

        history = await self._price_history.recent(product_name, limit=HISTORY_LIMIT)
        external = await self._external_prices.lookup(product_name)
        logger.info("External price for '%s': %s from %s", product_name, external.price, external.source)
        return await self._advisor.evaluate(history, external, product_name=product_name)

    async def _search(self, term: str, location: GeoPoint) -> SearchResult:
        with _tracer.start_as_current_span(
            "search",
            attributes={"query": term, "latitude": location.latitude, "longitude": location.longitude},
        ) as span:
            retrieval = await self._retriever.retrieve(location, term)
            span.set_attribute("candidate_count", len(retrieval.candidates))
            if not retrieval.candidates:
                span.set_attribute("exit_reason", "no_candidates")
                return SearchResult(summary=retrieval.message, recommendations=[])

            return await self._ranker.rank(
                retrieval.candidates, term, location,
                prefer_local_ranking=self._prefer_local_ranking,
            )
