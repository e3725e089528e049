"""Configuration models and YAML loader for the ranking engine."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/jobs.db"


class FilterConfig(BaseModel):
    """Defaults and ceilings applied by the filter normalizer."""

    home_country: str = "India"
    default_limit: int = Field(default=20, ge=1, le=50)
    max_limit: int = Field(default=50, ge=1, le=50)
    max_page: int = Field(default=1000, ge=1)

    @field_validator("home_country")
    @classmethod
    def home_country_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "home_country must not be empty"
            raise ValueError(msg)
        return v.strip()


class CacheConfig(BaseModel):
    """Result cache policy."""

    enabled: bool = True
    backend: Literal["memory", "sqlite"] = "memory"
    namespace: str = "jobs:rank"
    volatile_ttl_seconds: int = Field(default=300, ge=1)
    default_ttl_seconds: int = Field(default=1800, ge=1)
    key_length: int = Field(default=64, ge=16, le=64)
    invalidation: Literal["ttl", "publish"] = "ttl"


class RankingConfig(BaseModel):
    """Ranking coordinator settings."""

    custom_result_cap: int = Field(default=100, ge=1)
    personalization_rerank: bool = True


class StorageConfig(BaseModel):
    """Retry policy for job store reads."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_seconds: float = Field(default=0.05, ge=0.0)


class AnalyticsConfig(BaseModel):
    """Batching for fire-and-forget analytics events."""

    enabled: bool = True
    max_buffer: int = Field(default=1000, ge=1)
    flush_threshold: int = Field(default=50, ge=1)
    flush_interval_seconds: float = Field(default=5.0, gt=0.0)
    events_path: str | None = None


class ProfilesConfig(BaseModel):
    """Source of user preference signals."""

    path: str | None = None


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    profiles: ProfilesConfig = Field(default_factory=ProfilesConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
