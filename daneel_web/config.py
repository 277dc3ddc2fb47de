"""
Daneel Web — Configuration System

All configuration is Pydantic-validated and loaded from:
1. default.yaml (defaults)
2. Environment variables (overrides)

Read once at startup. There is no hot-reload: a running observer never
changes cadence or addresses underneath its sessions.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from daneel_web.errors import ConfigurationError
from daneel_web.primitives.snapshot import DEFAULT_ACTORS, RECENT_THOUGHTS_LIMIT

# ─── Sub-configs ──────────────────────────────────────────────────


class ServerConfig(BaseModel):
    # Loopback by default; exposure is the deployment's decision.
    host: str = "127.0.0.1"
    port: int = 3000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    @field_validator("host")
    @classmethod
    def _host_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value or " " in value:
            raise ValueError(f"unparsable listen host: {value!r}")
        return value

    @field_validator("port")
    @classmethod
    def _port_in_range(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError(f"listen port out of range: {value}")
        return value


class StreamStoreConfig(BaseModel):
    url: str = "redis://localhost:6379/0"
    password: str = ""
    prefix: str = "daneel"
    awake_stream: str = "stream:awake"
    actors_key: str = "actors"
    timeout_ms: int = 120

    @property
    def full_url(self) -> str:
        """Build URL with password injected."""
        clean_pw = self.password.strip() if self.password else ""
        if clean_pw and "://" in self.url and "@" not in self.url:
            scheme, rest = self.url.split("://", 1)
            return f"{scheme}://:{clean_pw}@{rest}"
        return self.url


class VectorStoreConfig(BaseModel):
    url: str = "http://localhost:6333"
    api_key: str = ""
    prefer_grpc: bool = False
    memories_collection: str = "memories"
    unconscious_collection: str = "unconscious"
    identity_collection: str = "identity"
    identity_point_id: str = "00000000-0000-0000-0000-000000000001"
    timeout_ms: int = 120

    @model_validator(mode="after")
    def _strip_api_key(self) -> VectorStoreConfig:
        # Secret managers can inject trailing \r\n into env vars
        if self.api_key:
            object.__setattr__(self, "api_key", self.api_key.strip())
        return self


class CollectorConfig(BaseModel):
    tick_interval_ms: int = 200
    recent_thoughts_limit: int = Field(RECENT_THOUGHTS_LIMIT, ge=1, le=RECENT_THOUGHTS_LIMIT)
    preview_chars: int = Field(80, ge=1)
    known_actors: list[str] = Field(default_factory=lambda: list(DEFAULT_ACTORS))
    identity_name: str = "Timmy"
    connection_drive_baseline: float = Field(0.85, ge=0.0, le=1.0)


class ManifoldConfig(BaseModel):
    refresh_interval_ms: int = 2000
    sample_count: int = Field(500, ge=1)
    dimension: int = 384
    projection: str = "random"  # "random" | "pca"
    seed: int = 42
    timeout_ms: int = 1500
    salience_field: str = "semantic_salience"
    encoded_at_field: str = "encoded_at"

    @field_validator("dimension")
    @classmethod
    def _dimension_projectable(cls, value: int) -> int:
        if value < 3:
            raise ValueError(f"embedding dimension must be >= 3, got {value}")
        return value

    @field_validator("projection")
    @classmethod
    def _known_projection(cls, value: str) -> str:
        if value not in ("random", "pca"):
            raise ValueError(f"unknown projection: {value!r}")
        return value


class AliveConfig(BaseModel):
    # Depth of each observer's outbound queue. Pending frames are replaced,
    # never queued behind, so this stays tiny.
    queue_depth: int = Field(1, ge=1, le=8)
    write_timeout_ms: int = 150


class EmbeddingConfig(BaseModel):
    strategy: str = "local"  # "local" | "sidecar" | "mock"
    local_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    local_device: str = "cpu"
    sidecar_url: str | None = None
    dimension: int = 384


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


# ─── Root Configuration ──────────────────────────────────────────


class DaneelWebConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.

    Precedence, highest first: DANEEL_<SECTION>__<FIELD>, the short
    variables (REDIS_URL, PORT, ...), the YAML file, field defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="DANEEL_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    stream_store: StreamStoreConfig = Field(default_factory=StreamStoreConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    manifold: ManifoldConfig = Field(default_factory=ManifoldConfig)
    alive: AliveConfig = Field(default_factory=AliveConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # load_config passes the YAML as init kwargs; DANEEL_<SECTION>__<FIELD>
        # must still win over it. Nested sections are merged field by field.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @model_validator(mode="after")
    def _timeouts_fit_cadence(self) -> DaneelWebConfig:
        tick = self.collector.tick_interval_ms
        if tick <= 0:
            raise ValueError("collector.tick_interval_ms must be positive")
        for name, timeout in (
            ("stream_store.timeout_ms", self.stream_store.timeout_ms),
            ("vector_store.timeout_ms", self.vector_store.timeout_ms),
            ("alive.write_timeout_ms", self.alive.write_timeout_ms),
        ):
            if not 0 < timeout < tick:
                raise ValueError(
                    f"{name}={timeout} must be positive and below the "
                    f"tick interval ({tick} ms)"
                )
        refresh = self.manifold.refresh_interval_ms
        if not 0 < self.manifold.timeout_ms < refresh:
            raise ValueError(
                f"manifold.timeout_ms={self.manifold.timeout_ms} must be positive "
                f"and below the refresh interval ({refresh} ms)"
            )
        if self.embedding.dimension != self.manifold.dimension:
            raise ValueError(
                f"embedding.dimension={self.embedding.dimension} does not match "
                f"manifold.dimension={self.manifold.dimension}"
            )
        return self


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _env_overrides() -> dict[str, Any]:
    """
    Short environment variables used by existing deployments.

    DANEEL_<SECTION>__<FIELD> works too (pydantic-settings); these exist so
    the container and compose files keep working unchanged.
    """
    raw: dict[str, Any] = {}

    if redis_url := os.environ.get("REDIS_URL"):
        raw.setdefault("stream_store", {})["url"] = redis_url
    if redis_pw := os.environ.get("REDIS_PASSWORD"):
        raw.setdefault("stream_store", {})["password"] = redis_pw
    if qdrant_url := os.environ.get("QDRANT_URL"):
        raw.setdefault("vector_store", {})["url"] = qdrant_url
    if qdrant_key := os.environ.get("QDRANT_API_KEY"):
        raw.setdefault("vector_store", {})["api_key"] = qdrant_key
    if host := os.environ.get("HOST"):
        raw.setdefault("server", {})["host"] = host
    if port := os.environ.get("PORT"):
        raw.setdefault("server", {})["port"] = port
    if tick := os.environ.get("TICK_INTERVAL_MS"):
        raw.setdefault("collector", {})["tick_interval_ms"] = tick
    if refresh := os.environ.get("REFRESH_INTERVAL_MS"):
        raw.setdefault("manifold", {})["refresh_interval_ms"] = refresh
    if sample_count := os.environ.get("SAMPLE_COUNT"):
        raw.setdefault("manifold", {})["sample_count"] = sample_count
    if level := os.environ.get("LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = level

    return raw


def load_config(config_path: str | Path | None = None) -> DaneelWebConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.

    Raises ConfigurationError for anything that does not validate.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                try:
                    raw = yaml.safe_load(f) or {}
                except yaml.YAMLError as exc:
                    raise ConfigurationError(f"unreadable config file {path}: {exc}") from exc

    raw = _deep_merge(raw, _env_overrides())

    try:
        return DaneelWebConfig(**raw)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc
