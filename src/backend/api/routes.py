"""API route definitions."""

from __future__ import annotations

import base64
import binascii
import json
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query

from src.backend.api.deps import (
    get_discovery_service,
    get_history_repository,
    get_price_repository,
    get_product_repository,
    get_shop_repository,
)
from src.backend.db.repositories import (
    MarketPriceRepository,
    ProductRepository,
    SearchHistoryRepository,
    ShopRepository,
)
from src.discovery.service import DiscoveryService
from src.shared.config import settings
from src.shared.logging import get_logger, set_request_id
from src.shared.models import (
    CatalogEntry,
    GeoPoint,
    ImageSearchRequest,
    ImageSearchResponse,
    MarketPriceCreate,
    Product,
    ProductCreate,
    SearchRequest,
    SearchResult,
    Shop,
    ShopCreate,
    TrendVerdict,
)

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str | bool]:
    return {
        "status": "ok",
        "ai_configured": bool(settings.gemini_api_key),
        "model": settings.gemini_model,
    }


@router.post("/search", response_model=SearchResult)
async def search(
    request: SearchRequest,
    service: DiscoveryService = Depends(get_discovery_service),
    history: SearchHistoryRepository = Depends(get_history_repository),
) -> SearchResult:
    session_id = request.session_id or uuid.uuid4().hex
    set_request_id(session_id)
    location = GeoPoint(latitude=request.latitude, longitude=request.longitude)

    result = await service.search(request.query, location)

    await history.record(
        session_id=session_id,
        query=request.query,
        location=location,
        results_json=json.dumps(result.model_dump(), ensure_ascii=False),
    )
    return result


@router.post("/search-by-image", response_model=ImageSearchResponse)
async def search_by_image(
    request: ImageSearchRequest,
    service: DiscoveryService = Depends(get_discovery_service),
    history: SearchHistoryRepository = Depends(get_history_repository),
) -> ImageSearchResponse:
    session_id = request.session_id or uuid.uuid4().hex
    set_request_id(session_id)
    try:
        image = base64.b64decode(request.image_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail="image_base64 is not valid base64.") from exc

    location = GeoPoint(latitude=request.latitude, longitude=request.longitude)
    response = await service.search_by_image(image, request.mime_type, location)

    await history.record(
        session_id=session_id,
        query=response.detected_label or settings.default_image_term,
        location=location,
        results_json=json.dumps(response.model_dump(), ensure_ascii=False),
        detected_label=response.detected_label,
    )
    return response


@router.get("/market-trend/{product_name}", response_model=TrendVerdict)
async def market_trend(
    product_name: str,
    service: DiscoveryService = Depends(get_discovery_service),
) -> TrendVerdict:
    set_request_id(uuid.uuid4().hex)
    return await service.trend(product_name)


@router.post("/market-price", status_code=201)
async def add_market_price(
    payload: MarketPriceCreate,
    prices: MarketPriceRepository = Depends(get_price_repository),
) -> dict:
    observation = await prices.record(payload)
    return {"message": "Market price added successfully", "data": observation.model_dump(mode="json")}


@router.post("/shops", response_model=Shop, status_code=201)
async def create_shop(
    payload: ShopCreate,
    shops: ShopRepository = Depends(get_shop_repository),
) -> Shop:
    return await shops.create(payload)


@router.get("/shops", response_model=list[Shop])
async def list_shops(shops: ShopRepository = Depends(get_shop_repository)) -> list[Shop]:
    return await shops.list_all()


@router.post("/products", response_model=Product, status_code=201)
async def create_product(
    payload: ProductCreate,
    products: ProductRepository = Depends(get_product_repository),
) -> Product:
    try:
        return await products.create(payload)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/products", response_model=list[CatalogEntry])
async def list_products(
    shop_id: int | None = Query(default=None),
    products: ProductRepository = Depends(get_product_repository),
) -> list[CatalogEntry]:
    return await products.list_all(shop_id)
