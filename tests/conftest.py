"""Shared test configuration.

Points DATABASE_URL at in-memory SQLite, blanks the Gemini key and turns off
on-device model loading before any application module is imported, so tests
never reach real services or download model weights.
"""

from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["GEMINI_API_KEY"] = ""
os.environ["VISION_MODELS_ENABLED"] = "false"

import pytest  # noqa: E402
from sqlalchemy import delete  # noqa: E402

from src.backend.db.engine import async_session, init_db  # noqa: E402


@pytest.fixture(autouse=True, scope="session")
async def _create_tables():
    """Create database tables once for the entire test session."""
    await init_db()


@pytest.fixture
async def clean_db():
    """Empty every table before a test that depends on exact row counts."""
    from src.backend.db.models import Base

    async with async_session() as session:
        for table in reversed(Base.metadata.sorted_tables):
            await session.execute(delete(table))
        await session.commit()
    yield
