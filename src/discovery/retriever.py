"""Candidate retrieval: nearby shops joined with their matching products."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from src.shared.logging import get_logger
from src.shared.models import CandidateRecord, CatalogEntry, GeoPoint, Shop

logger = get_logger(__name__)

NO_SHOPS_MESSAGE = "No shops found near your location."


class ShopLookupService(Protocol):
    async def nearby_shops(self, point: GeoPoint, radius_km: float) -> list[Shop]: ...


class ProductCatalog(Protocol):
    async def query(
        self, shop_ids: Sequence[int], name_filter: str | None = None,
    ) -> list[CatalogEntry]: ...


@dataclass
class Retrieval:
    candidates: list[CandidateRecord] = field(default_factory=list)
    message: str = ""


def no_products_message(query_term: str) -> str:
    matching = f'matching "{query_term}" ' if query_term else ""
    return f"No products {matching}found in nearby shops."


def to_candidate(entry: CatalogEntry) -> CandidateRecord:
    return CandidateRecord(
        product_name=entry.product.name,
        price=entry.product.price,
        rating=entry.product.rating,
        shop_name=entry.shop.name,
        shop_contact=entry.shop.contact_number,
        shop_email=entry.shop.email,
        shop_location=entry.shop.location,
    )


class CandidateRetriever:
    """Builds candidate records for one search.

    Collaborator errors propagate unchanged; there is no partial result.
    """

    def __init__(self, shops: ShopLookupService, catalog: ProductCatalog, radius_km: float) -> None:
        self._shops = shops
        self._catalog = catalog
        self._radius_km = radius_km

    async def retrieve(self, location: GeoPoint, query_term: str | None) -> Retrieval:
        term = (query_term or "").strip()

        shops = await self._shops.nearby_shops(location, self._radius_km)
        if not shops:
            return Retrieval(message=NO_SHOPS_MESSAGE)
        logger.info("Found %d shops within %.1f km", len(shops), self._radius_km)

        entries = await self._catalog.query([s.id for s in shops], term or None)
        if not entries:
            return Retrieval(message=no_products_message(term))
        logger.info("Found %d products for '%s'", len(entries), term)

        return Retrieval(candidates=[to_candidate(e) for e in entries])
