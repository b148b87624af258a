from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _running_in_docker() -> bool:
    """Best-effort check for container execution.

    Used only to pick sensible defaults. Environment variables always win.
    """
    return Path("/.dockerenv").exists() or os.environ.get("RUNNING_IN_DOCKER") == "1"


def _default_osrm_base_url() -> str:
    # In docker-compose, OSRM is reachable by service name "osrm".
    return "http://osrm:5000" if _running_in_docker() else "https://router.project-osrm.org"


def _default_out_dir() -> str:
    return str(Path(__file__).resolve().parents[1] / "out")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" (docker compose) and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    osrm_base_url: str = Field(default_factory=_default_osrm_base_url, alias="OSRM_BASE_URL")
    osrm_profile: str = Field(default="driving", alias="OSRM_PROFILE")
    osrm_max_retries: int = Field(default=3, ge=1, le=10, alias="OSRM_MAX_RETRIES")

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Air-quality providers
    aqi_providers_enabled: str = Field(
        default="openweather,waqi,open_meteo",
        alias="AQI_PROVIDERS_ENABLED",
    )
    openweather_api_key: str = Field(default="", alias="OPENWEATHER_API_KEY")
    openweather_air_pollution_url: str = Field(
        default="https://api.openweathermap.org/data/2.5/air_pollution",
        alias="OPENWEATHER_AIR_POLLUTION_URL",
    )
    waqi_api_token: str = Field(default="", alias="WAQI_API_TOKEN")
    waqi_feed_url: str = Field(
        default="https://api.waqi.info/feed/geo:{lat};{lng}/",
        alias="WAQI_FEED_URL",
    )
    open_meteo_air_quality_url: str = Field(
        default="https://air-quality-api.open-meteo.com/v1/air-quality",
        alias="OPEN_METEO_AIR_QUALITY_URL",
    )
    provider_request_timeout_s: float = Field(
        default=8.0,
        ge=0.5,
        le=60.0,
        alias="PROVIDER_REQUEST_TIMEOUT_S",
    )

    # Exposure estimation (so a sweep doesn't saturate rate-limited providers)
    exposure_concurrency: int = Field(default=8, ge=1, le=64, alias="EXPOSURE_CONCURRENCY")
    exposure_tile_size_deg: float = Field(default=0.02, gt=0.0, le=1.0, alias="EXPOSURE_TILE_SIZE_DEG")
    exposure_cache_ttl_s: int = Field(default=1800, ge=1, alias="EXPOSURE_CACHE_TTL_S")
    exposure_fallback_ttl_s: int = Field(default=60, ge=1, alias="EXPOSURE_FALLBACK_TTL_S")
    exposure_cache_max_entries: int = Field(default=5000, ge=1, alias="EXPOSURE_CACHE_MAX_ENTRIES")

    # Route graph / sweep
    assumed_speed_mps: float = Field(default=13.89, gt=0.0, alias="ASSUMED_SPEED_MPS")
    max_alternatives: int = Field(default=5, ge=1, le=20, alias="MAX_ALTERNATIVES")
    baseline_aqi_sample_points: int = Field(default=20, ge=2, le=200, alias="BASELINE_AQI_SAMPLE_POINTS")

    @model_validator(mode="after")
    def _fallback_ttl_within_cache_ttl(self) -> Settings:
        if self.exposure_fallback_ttl_s > self.exposure_cache_ttl_s:
            self.exposure_fallback_ttl_s = self.exposure_cache_ttl_s
        return self

    def enabled_provider_names(self) -> list[str]:
        out: list[str] = []
        for raw in self.aqi_providers_enabled.split(","):
            name = raw.strip().lower()
            if name and name not in out:
                out.append(name)
        return out


settings = Settings()
