"""
Configuration management for the LiveTV resolver.
Uses pydantic-settings for environment variable loading.
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from livetv.models.stream import ProviderKind


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    app_name: str = "LiveTV Resolver"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS Configuration
    cors_origins: list[str] = ["*"]

    # Rate Limiting
    rate_limit_per_minute: int = 100
    stream_rate_limit_per_minute: int = 1200  # segments arrive every few seconds per viewer

    # Upstream timeouts (seconds)
    provider_timeout: float = 20.0  # embed pages and the single iframe hop
    proxy_connect_timeout: float = 5.0
    proxy_read_timeout: float = 15.0

    user_agent: str = DEFAULT_USER_AGENT

    # Routing
    provider_priority: list[ProviderKind] = [ProviderKind.DLHD, ProviderKind.CDNLIVE, ProviderKind.PPV]
    numeric_channel_min: int = 1
    numeric_channel_max: int = 850
    fallback_attempt_delay: float = 0.0
    channel_mappings_path: Optional[str] = None  # defaults to the bundled table

    # DLHD (numeric channels)
    dlhd_player_domain: str = "epicplayplay.cfd"
    dlhd_parent_domain: str = "daddyhd.com"
    dlhd_path_variants: list[str] = ["stream", "cast", "watch", "plus", "casting", "player"]

    # CDN Live (events and network channels), tried in order
    cdnlive_domains: list[str] = ["cdn-live.tv", "cdn-live.me", "cdnlive.tv", "cdnlive.me"]
    cdnlive_default_country: str = "us"

    # PPV
    ppv_embed_domains: list[str] = ["pooembed.top"]
    ppv_referer: str = "https://ppv.to/"

    # Routes on this service that rewritten URLs point back to
    proxy_path: str = "/stream-proxy"
    tv_proxy_path: str = "/tv"

    model_config = SettingsConfigDict(env_prefix="LIVETV_", env_file=".env", frozen=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
