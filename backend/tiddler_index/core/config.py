"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "TIDX_"
CONFIG_ENV = f"{ENV_PREFIX}CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/tiddler-index/config.yaml")

# (section, key) in the YAML file -> Settings field
_YAML_KEY_MAP: Mapping[tuple[str, str], str] = {
    ("storage", "db_path"): "db_path",
    ("wiki", "url"): "wiki_url",
    ("wiki", "recipe"): "wiki_recipe",
    ("wiki", "bag"): "wiki_bag",
    ("wiki", "auth_header"): "auth_header",
    ("wiki", "auth_user"): "auth_user",
    ("wiki", "timeout_seconds"): "wiki_timeout_seconds",
    ("embeddings", "enabled"): "embeddings_enabled",
    ("embeddings", "url"): "ollama_url",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "distance_metric"): "distance_metric",
    ("embeddings", "timeout_seconds"): "embed_timeout_seconds",
    ("embeddings", "health_timeout_seconds"): "health_timeout_seconds",
    ("sync", "enabled"): "sync_enabled",
    ("sync", "interval_seconds"): "sync_interval_seconds",
    ("sync", "batch_size"): "sync_batch_size",
    ("sync", "filter"): "sync_filter",
    ("sync", "error_retry_hours"): "error_retry_hours",
    ("sync", "prune_deleted"): "prune_deleted",
    ("search", "chunk_max_tokens"): "chunk_max_tokens",
    ("search", "max_response_tokens"): "max_response_tokens",
    ("search", "default_limit"): "semantic_default_limit",
    ("search", "max_limit"): "max_limit",
}

# Unprefixed variables understood for compatibility with existing wiki deployments.
# TIDX_* variables take precedence over these.
_ENV_ALIASES: Mapping[str, str] = {
    "TIDDLYWIKI_URL": "wiki_url",
    "AUTH_HEADER": "auth_header",
    "AUTH_USER": "auth_user",
    "OLLAMA_URL": "ollama_url",
    "OLLAMA_MODEL": "embedding_model",
    "EMBEDDINGS_ENABLED": "embeddings_enabled",
    "EMBEDDINGS_DB_PATH": "db_path",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".tiddler-index" / "embeddings.db")

    wiki_url: str = "http://localhost:8080"
    wiki_recipe: str = "default"
    wiki_bag: str = "default"
    auth_header: str = "X-Oidc-Username"
    auth_user: str = "mcp-user"
    wiki_timeout_seconds: float = Field(default=30.0, gt=0)

    embeddings_enabled: bool = True
    ollama_url: str = "http://localhost:11434"
    embedding_model: str = "nomic-embed-text"
    embedding_dim: int = Field(default=768, gt=0)
    distance_metric: Literal["cosine", "l2"] = "cosine"
    embed_timeout_seconds: float = Field(default=120.0, gt=0)
    health_timeout_seconds: float = Field(default=10.0, gt=0)

    sync_enabled: bool = True
    sync_interval_seconds: float = Field(default=300.0, gt=0)
    sync_batch_size: int = Field(default=5, gt=0)
    sync_filter: str = "[!is[system]sort[title]]"
    error_retry_hours: float = Field(default=24.0, ge=0)
    prune_deleted: bool = True

    chunk_max_tokens: int = Field(default=6000, gt=0)
    max_response_tokens: int = Field(default=23000, gt=0)
    semantic_default_limit: int = Field(default=10, gt=0)
    max_limit: int = Field(default=100, gt=0)

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if not isinstance(value, (str, Path)):
            raise TypeError("db_path must be a path or string")
        return Path(value).expanduser()

    @field_validator("wiki_url", "ollama_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Build settings from defaults, then the YAML file, then the environment."""
        data: dict[str, Any] = {}
        config_path = _config_path(path)
        if config_path is not None:
            data.update(_flatten_yaml(yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}))
        data.update(_load_env_overrides(os.environ))
        return cls(**data)


def _config_path(explicit: Path | None) -> Path | None:
    candidate = explicit or (Path(os.environ[CONFIG_ENV]) if os.environ.get(CONFIG_ENV) else None)
    if candidate is None:
        candidate = DEFAULT_CONFIG_PATH
    candidate = candidate.expanduser()
    return candidate if candidate.exists() else None


def _flatten_yaml(raw: Any) -> dict[str, Any]:
    """Map ``section: {key: value}`` YAML onto Settings field names."""
    if not isinstance(raw, Mapping):
        raise ValueError(f"Config file must contain a mapping, got {type(raw).__name__}")
    flat: dict[str, Any] = {}
    for section, body in raw.items():
        if isinstance(body, Mapping):
            for key, value in body.items():
                field_name = _YAML_KEY_MAP.get((section, key))
                if field_name is not None:
                    flat[field_name] = value
        elif section in Settings.model_fields:
            flat[section] = body
    return flat


def _load_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {
        field_name: environ[name] for name, field_name in _ENV_ALIASES.items() if environ.get(name)
    }
    for key, value in environ.items():
        if key == CONFIG_ENV or not key.startswith(ENV_PREFIX):
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
