"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    env: str = "local"
    database_url: str = "sqlite+aiosqlite:///./nearshop.db"
    log_level: str = "DEBUG"
    log_format: str = "console"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"
    ai_timeout_s: float = 20.0
    use_local_ranking: bool = False
    search_radius_km: float = 5.0
    default_image_term: str = "Burger"
    vision_models_enabled: bool = True
    otel_exporter_endpoint: str = ""
    trace_console: bool = False

    model_config = {"env_file": "config/.env.local", "extra": "ignore"}


settings = Settings()
