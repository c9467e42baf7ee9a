"""Storage collaborators backed by the SQLAlchemy models.

Every database failure surfaces as :class:`Unavailable`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from src.backend.db.models import MarketPriceRecord, ProductRecord, SearchHistory, ShopRecord
from src.discovery.errors import Unavailable
from src.shared.geo import bounding_box, distance_km
from src.shared.logging import get_logger
from src.shared.models import (
    CatalogEntry,
    GeoPoint,
    MarketPriceCreate,
    PriceObservation,
    Product,
    ProductCreate,
    Shop,
    ShopCreate,
)

logger = get_logger(__name__)


def _to_shop(record: ShopRecord) -> Shop:
    location = None
    if record.latitude is not None and record.longitude is not None:
        location = GeoPoint(latitude=record.latitude, longitude=record.longitude)
    return Shop(
        id=record.id,
        name=record.name,
        location=location,
        contact_number=record.contact_number,
        email=record.email,
        description=record.description,
    )


def _to_product(record: ProductRecord) -> Product:
    return Product(
        id=record.id,
        shop_id=record.shop_id,
        name=record.name,
        price=record.price,
        rating=record.rating,
        stock_quantity=record.stock_quantity,
        description=record.description,
    )


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class _Repository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Storage error during %s", operation, exc_info=True)
            raise Unavailable(f"Storage unavailable during {operation}") from exc


class ShopRepository(_Repository):
    async def nearby_shops(self, point: GeoPoint, radius_km: float) -> list[Shop]:
        """Shops within *radius_km* of *point*, nearest first."""
        min_lat, max_lat, min_lon, max_lon = bounding_box(point, radius_km)
        stmt = select(ShopRecord).where(
            ShopRecord.latitude.is_not(None),
            ShopRecord.longitude.is_not(None),
            ShopRecord.latitude.between(min_lat, max_lat),
        )
        # Skip the longitude prefilter when the box wraps the antimeridian
        if min_lon >= -180 and max_lon <= 180:
            stmt = stmt.where(ShopRecord.longitude.between(min_lon, max_lon))

        async with self._session("nearby_shops") as session:
            result = await session.execute(stmt)
            shops = [_to_shop(r) for r in result.scalars()]

        within = [(distance_km(point, s.location), s) for s in shops]
        within = [(d, s) for d, s in within if d <= radius_km]
        within.sort(key=lambda pair: (pair[0], pair[1].id))
        return [s for _, s in within]

    async def create(self, data: ShopCreate) -> Shop:
        async with self._session("create_shop") as session:
            record = ShopRecord(**data.model_dump())
            session.add(record)
            await session.commit()
            logger.info("Created shop '%s' (id=%s)", record.name, record.id)
            return _to_shop(record)

    async def list_all(self) -> list[Shop]:
        async with self._session("list_shops") as session:
            result = await session.execute(select(ShopRecord).order_by(ShopRecord.id))
            return [_to_shop(r) for r in result.scalars()]


class ProductRepository(_Repository):
    async def query(
        self, shop_ids: Sequence[int], name_filter: str | None = None,
    ) -> list[CatalogEntry]:
        """Products sold by *shop_ids*, optionally filtered by case-insensitive substring."""
        if not shop_ids:
            return []

        stmt = (
            select(ProductRecord)
            .options(selectinload(ProductRecord.shop))
            .where(ProductRecord.shop_id.in_(list(shop_ids)))
            .order_by(ProductRecord.id)
        )
        if name_filter and name_filter.strip():
            pattern = f"%{_escape_like(name_filter.strip())}%"
            stmt = stmt.where(ProductRecord.name.ilike(pattern, escape="\\"))

        async with self._session("query_products") as session:
            result = await session.execute(stmt)
            return [
                CatalogEntry(product=_to_product(r), shop=_to_shop(r.shop))
                for r in result.scalars()
            ]

    async def create(self, data: ProductCreate) -> Product:
        async with self._session("create_product") as session:
            if await session.get(ShopRecord, data.shop_id) is None:
                raise LookupError(f"Shop {data.shop_id} does not exist")
            record = ProductRecord(**data.model_dump())
            session.add(record)
            await session.commit()
            logger.info("Added product '%s' to shop %s", record.name, record.shop_id)
            return _to_product(record)

    async def list_all(self, shop_id: int | None = None) -> list[CatalogEntry]:
        stmt = select(ProductRecord).options(selectinload(ProductRecord.shop)).order_by(ProductRecord.id)
        if shop_id is not None:
            stmt = stmt.where(ProductRecord.shop_id == shop_id)
        async with self._session("list_products") as session:
            result = await session.execute(stmt)
            return [
                CatalogEntry(product=_to_product(r), shop=_to_shop(r.shop))
                for r in result.scalars()
            ]


class MarketPriceRepository(_Repository):
    async def recent(self, product_name: str, limit: int = 30) -> list[PriceObservation]:
        """Latest observations for *product_name* (case-insensitive), newest first."""
        stmt = (
            select(MarketPriceRecord)
            .where(func.lower(MarketPriceRecord.product_name) == product_name.strip().lower())
            .order_by(MarketPriceRecord.created_at.desc(), MarketPriceRecord.id.desc())
            .limit(limit)
        )
        async with self._session("recent_prices") as session:
            result = await session.execute(stmt)
            return [
                PriceObservation(price=r.price, observed_at=r.created_at)
                for r in result.scalars()
            ]

    async def record(self, data: MarketPriceCreate, observed_at: datetime | None = None) -> PriceObservation:
        async with self._session("record_price") as session:
            record = MarketPriceRecord(**data.model_dump())
            if observed_at is not None:
                record.created_at = observed_at
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return PriceObservation(price=record.price, observed_at=record.created_at)


class SearchHistoryRepository(_Repository):
    async def record(
        self,
        session_id: str,
        query: str,
        location: GeoPoint,
        results_json: str,
        detected_label: str | None = None,
    ) -> None:
        async with self._session("record_search") as session:
            session.add(SearchHistory(
                session_id=session_id,
                query=query,
                latitude=location.latitude,
                longitude=location.longitude,
                detected_label=detected_label,
                results_json=results_json,
            ))
            await session.commit()
