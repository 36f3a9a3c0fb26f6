# src/immidir/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/immidir/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `IMMIDIR_CONFIG_PATH` (replaces the packaged defaults)
- environment variables (e.g., `IMMIDIR_LOG_LEVEL`, `GEOAPIFY_API_KEY`)

Design rule:
- Tuning knobs (default radius, page size, store backend) live in YAML, not in
  query or store code.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal
from immidir.core.env import load_dotenv_if_present
from immidir.core.spatial_index import check_cell_size

import yaml
from pydantic import BaseModel, Field, field_validator


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `immidir.config`."""
    text = resources.files("immidir.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "ImmiDir"
    log_level: str = "INFO"


class CatalogSettings(BaseModel):
    path: str = "data/seed/resources.json"
    geocode_missing: bool = False


class StoreSettings(BaseModel):
    backend: Literal["memory", "json"] = "memory"
    dir: str = ".data/immidir"
    index_cell_size_deg: float = Field(0.5, gt=0, le=90)

    @field_validator("index_cell_size_deg")
    @classmethod
    def _cell_size_tiles_longitude(cls, value: float) -> float:
        return check_cell_size(value)


class QuerySettings(BaseModel):
    default_radius_km: float = Field(50, gt=0)
    default_limit: int = Field(50, ge=1)
    default_page: int = Field(1, ge=1)
    default_sort_by: str = "rating"
    search_limit_default: int = Field(20, ge=1)
    # Applied by callers (CLI), never by the query engine.
    max_limit: int | None = Field(100, ge=1)
    geo_total_mode: Literal["radius", "predicate"] = "radius"


class CacheSettings(BaseModel):
    enabled: bool = True
    dir: str = ".cache/immidir"
    default_ttl_seconds: int = 60 * 60 * 24


class GeocodingSettings(BaseModel):
    search_url: str = "https://api.geoapify.com/v1/geocode/search"
    reverse_url: str = "https://api.geoapify.com/v1/geocode/reverse"
    api_key: str | None = None
    http_timeout_seconds: float = 15
    cache_ttl_seconds: int = 60 * 60 * 24 * 30


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    query: QuerySettings = Field(default_factory=QuerySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("IMMIDIR_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    cache_dir = os.getenv("IMMIDIR_CACHE_DIR")
    if cache_dir:
        data.setdefault("cache", {})["dir"] = cache_dir

    backend = os.getenv("IMMIDIR_STORE_BACKEND")
    if backend:
        data.setdefault("store", {})["backend"] = backend.strip().lower()

    store_dir = os.getenv("IMMIDIR_STORE_DIR")
    if store_dir:
        data.setdefault("store", {})["dir"] = store_dir

    api_key = os.getenv("GEOAPIFY_API_KEY")
    if api_key:
        data.setdefault("geocoding", {})["api_key"] = api_key

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("IMMIDIR_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
