"""Unit tests for candidate retrieval."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.discovery.errors import Unavailable
from src.discovery.retriever import NO_SHOPS_MESSAGE, CandidateRetriever, no_products_message
from src.shared.models import CatalogEntry, GeoPoint, Product, Shop

USER = GeoPoint(latitude=12.97, longitude=77.59)
SHOP = Shop(
    id=7,
    name="Anna's Kitchen",
    location=GeoPoint(latitude=12.971, longitude=77.591),
    contact_number="9000000000",
    email="anna@kitchen.in",
)


def _entry(name: str, price: float = 80.0) -> CatalogEntry:
    return CatalogEntry(
        product=Product(id=1, shop_id=SHOP.id, name=name, price=price, rating=4.2),
        shop=SHOP,
    )


def _retriever(shops=None, entries=None) -> tuple[CandidateRetriever, AsyncMock, AsyncMock]:
    shop_lookup = AsyncMock()
    shop_lookup.nearby_shops.return_value = [SHOP] if shops is None else shops
    catalog = AsyncMock()
    catalog.query.return_value = [] if entries is None else entries
    return CandidateRetriever(shop_lookup, catalog, radius_km=5.0), shop_lookup, catalog


@pytest.mark.asyncio
async def test_no_shops_skips_catalog():
    retriever, shop_lookup, catalog = _retriever(shops=[])
    retrieval = await retriever.retrieve(USER, "burger")
    assert retrieval.candidates == []
    assert retrieval.message == NO_SHOPS_MESSAGE
    shop_lookup.nearby_shops.assert_awaited_once_with(USER, 5.0)
    catalog.query.assert_not_awaited()


@pytest.mark.asyncio
async def test_no_products_message_echoes_query():
    retriever, _, catalog = _retriever(entries=[])
    retrieval = await retriever.retrieve(USER, "Dosa")
    assert retrieval.message == 'No products matching "Dosa" found in nearby shops.'
    catalog.query.assert_awaited_once_with([7], "Dosa")


@pytest.mark.asyncio
async def test_blank_query_is_unfiltered():
    retriever, _, catalog = _retriever(entries=[])
    retrieval = await retriever.retrieve(USER, "  ")
    assert retrieval.message == "No products found in nearby shops."
    catalog.query.assert_awaited_once_with([7], None)


@pytest.mark.asyncio
async def test_joins_shop_fields():
    retriever, _, _ = _retriever(entries=[_entry("Masala Dosa"), _entry("Onion Dosa", 60)])
    retrieval = await retriever.retrieve(USER, "dosa")
    assert retrieval.message == ""
    assert [c.product_name for c in retrieval.candidates] == ["Masala Dosa", "Onion Dosa"]
    first = retrieval.candidates[0]
    assert first.shop_name == "Anna's Kitchen"
    assert first.shop_contact == "9000000000"
    assert first.shop_email == "anna@kitchen.in"
    assert first.shop_location == SHOP.location
    assert first.rating == 4.2


@pytest.mark.asyncio
async def test_collaborator_failure_propagates():
    retriever, _, catalog = _retriever()
    catalog.query.side_effect = Unavailable("db down")
    with pytest.raises(Unavailable):
        await retriever.retrieve(USER, "burger")


def test_no_products_message_without_query():
    assert no_products_message("") == "No products found in nearby shops."
