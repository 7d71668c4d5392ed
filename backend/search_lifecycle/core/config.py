"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "SLC_"
DEFAULT_CONFIG_PATH = Path("~/.config/search-lifecycle/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("service", "protocol"): "protocol",
    ("service", "host"): "host",
    ("service", "port"): "port",
    ("service", "api_key"): "api_key",
    ("service", "timeout_ms"): "timeout_ms",
    ("service", "backend"): "search_backend",
    ("storage", "db_path"): "db_path",
    ("indexer", "batch_size"): "batch_size",
    ("indexer", "dispatch"): "dispatch_mode",
    ("indexer", "queue_workers"): "queue_workers",
    ("indexer", "max_parallel"): "max_parallel",
    ("indexer", "dry_run"): "dry_run",
    ("indexer", "retries", "attempts"): "retry_attempts",
    ("indexer", "retries", "base"): "retry_base_delay",
    ("indexer", "retries", "max"): "retry_max_delay",
    ("indexer", "retries", "jitter_fraction"): "retry_jitter_fraction",
    ("schema", "retention", "keep"): "retention_keep",
    ("stale_deletes", "enabled"): "stale_deletes_enabled",
    ("stale_deletes", "strict_mode"): "stale_strict_mode",
    ("stale_deletes", "timeout_ms"): "stale_timeout_ms",
    ("registry", "module"): "registry_module",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    protocol: Literal["http", "https"] = "http"
    host: str = "localhost"
    port: int = 8108
    api_key: str = ""
    timeout_ms: int = Field(default=5_000, ge=0)
    search_backend: Literal["typesense", "memory"] = "typesense"
    db_path: Path = Field(default=Path.home() / ".search-lifecycle" / "slc.db")
    batch_size: int = Field(default=2_000, ge=1)
    retry_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=0.5, ge=0)
    retry_max_delay: float = Field(default=5.0, ge=0)
    retry_jitter_fraction: float = Field(default=0.2, ge=0, le=1)
    retention_keep: int = Field(default=2, ge=1)
    dispatch_mode: Literal["sync", "async"] = "sync"
    queue_workers: int = Field(default=2, ge=1)
    max_parallel: int = Field(default=1, ge=1)
    dry_run: bool = False
    stale_deletes_enabled: bool = True
    stale_strict_mode: bool = False
    stale_timeout_ms: int | None = None
    registry_module: str | None = None

    model_config = {
        "frozen": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @property
    def base_url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        mapped_key = _YAML_KEY_MAP.get(next_prefix)
        if mapped_key:
            flat[mapped_key] = value
        elif isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        elif key in Settings.model_fields:
            flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with SLC_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
