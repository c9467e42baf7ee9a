"""Dependency wiring for the API routes."""

from __future__ import annotations

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.backend.db.engine import async_session
from src.backend.db.repositories import (
    MarketPriceRepository,
    ProductRepository,
    SearchHistoryRepository,
    ShopRepository,
)
from src.discovery.judge import GeminiJudge
from src.discovery.ranking import RankingEngine
from src.discovery.retriever import CandidateRetriever
from src.discovery.service import DiscoveryService
from src.discovery.trend import SimulatedExternalPriceSource, TrendAdvisor
from src.discovery.vision import ImageIntentResolver, VisionModels
from src.shared.config import Settings, settings


def build_discovery_service(
    vision_models: VisionModels,
    session_factory: async_sessionmaker[AsyncSession] = async_session,
    config: Settings = settings,
) -> DiscoveryService:
    """Assemble the service from configuration; the AI judge is omitted without a key."""
    judge = None
    if config.gemini_api_key:
        judge = GeminiJudge(config.gemini_api_key, config.gemini_model, config.ai_timeout_s)

    prices = MarketPriceRepository(session_factory)
    return DiscoveryService(
        retriever=CandidateRetriever(
            ShopRepository(session_factory),
            ProductRepository(session_factory),
            radius_km=config.search_radius_km,
        ),
        ranker=RankingEngine(judge),
        resolver=ImageIntentResolver(judge, vision_models),
        advisor=TrendAdvisor(judge),
        price_history=prices,
        external_prices=SimulatedExternalPriceSource(),
        default_image_term=config.default_image_term,
        prefer_local_ranking=config.use_local_ranking,
    )


def get_discovery_service(request: Request) -> DiscoveryService:
    return request.app.state.discovery


def get_shop_repository() -> ShopRepository:
    return ShopRepository(async_session)


def get_product_repository() -> ProductRepository:
    return ProductRepository(async_session)


def get_price_repository() -> MarketPriceRepository:
    return MarketPriceRepository(async_session)


def get_history_repository() -> SearchHistoryRepository:
    return SearchHistoryRepository(async_session)
