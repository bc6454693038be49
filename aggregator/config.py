"""
Configuration management for the IPTV aggregator.
Uses pydantic-settings for environment variable loading.
"""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    app_name: str = "IPTV Aggregator"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS Configuration
    # Default allows all origins for development; set IPTV_CORS_ORIGINS for production
    cors_origins: list[str] = ["*"]

    # Rate Limiting
    rate_limit_per_minute: int = 100

    # Database (playlists and preferences)
    database_path: str = "data/aggregator.db"

    # Playlist downloads
    playlist_fetch_timeout: float = 60.0

    # Xtream Codes API
    xtream_request_timeout: float = 60.0
    xtream_series_info_timeout: float = 30.0
    xtream_vod_info_timeout: float = 15.0
    xtream_series_concurrency: int = 5

    # EPG cache and batching
    epg_cache_ttl_seconds: float = 300.0  # 5 minutes
    epg_refresh_interval_seconds: float = 300.0
    epg_chunk_size: int = 50
    epg_concurrency: int = 5
    epg_chunk_pause_seconds: float = 0.1
    epg_listing_limit: int = 3

    # Metadata providers (optional, enrichment is skipped without keys)
    tmdb_api_key: str = ""
    tmdb_api_base: str = "https://api.themoviedb.org/3"
    tmdb_image_base: str = "https://image.tmdb.org/t/p/"
    tmdb_language: str = "fr-FR"
    omdb_api_key: str = ""
    omdb_api_base: str = "https://www.omdbapi.com/"
    omdb_concurrency: int = 8
    metadata_cache_ttl_seconds: float = 86400.0  # 1 day
    metadata_request_timeout: float = 15.0

    # Pydantic V2 configuration
    model_config = SettingsConfigDict(env_prefix="IPTV_", env_file=".env")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
