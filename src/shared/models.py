"""Shared data models used across the application."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

MAX_RECOMMENDATIONS = 3


class GeoPoint(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class Shop(BaseModel):
    id: int
    name: str
    location: GeoPoint | None = None
    contact_number: str | None = None
    email: str | None = None
    description: str | None = None


class Product(BaseModel):
    id: int
    shop_id: int
    name: str
    price: float | None = Field(default=None, ge=0)
    rating: float | None = None
    stock_quantity: int | None = Field(default=None, ge=0)
    description: str | None = None


class CatalogEntry(BaseModel):
    """A product together with the shop that sells it."""

    product: Product
    shop: Shop


class CandidateRecord(BaseModel):
    product_name: str
    price: float | None = None
    rating: float | None = None
    shop_name: str
    shop_contact: str | None = None
    shop_email: str | None = None
    shop_location: GeoPoint | None = None


class Recommendation(BaseModel):
    rank: int = Field(ge=1)
    product_name: str
    price: float | None = None
    rating: float | None = None
    shop_name: str
    shop_contact: str | None = None
    shop_email: str | None = None
    distance_km: float | None = None
    reason: str = ""


class SearchResult(BaseModel):
    summary: str
    recommendations: list[Recommendation] = Field(
        default_factory=list, max_length=MAX_RECOMMENDATIONS
    )


class Classification(BaseModel):
    label: str
    confidence: float


class Detection(BaseModel):
    label: str
    score: float


class PriceObservation(BaseModel):
    price: float
    observed_at: datetime


class Trend(str, Enum):
    INSUFFICIENT_DATA = "Insufficient Data"
    RISING = "Rising"
    FALLING = "Falling"
    STABLE = "Stable"


class Prediction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class ExternalPrice(BaseModel):
    price: float
    source: str


class TrendVerdict(BaseModel):
    prediction: Prediction
    reason: str
    internal_price: float | None = None
    external_price: float


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------

class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    session_id: str | None = None


class ImageSearchRequest(BaseModel):
    image_base64: str = Field(min_length=1)
    mime_type: str = "image/jpeg"
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    session_id: str | None = None


class ImageSearchResponse(SearchResult):
    detected_label: str | None = None
    predictions: list[Classification] = Field(default_factory=list)


class ShopCreate(BaseModel):
    name: str = Field(min_length=1)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    description: str | None = None
    contact_number: str | None = None
    email: str | None = None


class ProductCreate(BaseModel):
    shop_id: int
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    rating: float = Field(default=3.0, ge=0, le=5)
    stock_quantity: int = Field(default=10, ge=0)
    description: str | None = None


class MarketPriceCreate(BaseModel):
    product_name: str = Field(min_length=1)
    price: float = Field(gt=0)
    source: str = "Internal"
