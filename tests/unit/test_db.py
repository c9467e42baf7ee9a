"""Unit tests for database initialization and models."""

from __future__ import annotations

import pytest
from sqlalchemy import select, text

from src.backend.db.engine import async_session, init_db
from src.backend.db.models import SearchHistory


@pytest.mark.asyncio
@pytest.mark.parametrize("table", ["shops", "products", "market_prices", "search_history"])
async def test_init_db_creates_tables(table):
    await init_db()
    async with async_session() as session:
        result = await session.execute(
            text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
            {"name": table},
        )
        assert result.scalar_one() == table


@pytest.mark.asyncio
async def test_insert_search_history():
    async with async_session() as session:
        session.add(SearchHistory(
            session_id="db-test-1",
            query="masala dosa",
            latitude=12.97,
            longitude=77.59,
            results_json="{}",
        ))
        await session.commit()

    async with async_session() as session:
        result = await session.execute(
            select(SearchHistory).where(SearchHistory.session_id == "db-test-1")
        )
        row = result.scalar_one()
        assert row.query == "masala dosa"
        assert row.detected_label is None
