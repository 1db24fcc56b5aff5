"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "DOCQA_"
DEFAULT_CONFIG_PATH = Path("~/.config/docqa/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("s3", "bucket"): "s3_bucket",
    ("s3", "region"): "s3_region",
    ("s3", "endpoint_url"): "s3_endpoint_url",
    ("s3", "access_key"): "s3_access_key",
    ("s3", "secret_key"): "s3_secret_key",
    ("queue", "url"): "sqs_queue_url",
    ("queue", "dlq_url"): "sqs_dlq_url",
    ("queue", "region"): "sqs_region",
    ("queue", "endpoint_url"): "sqs_endpoint_url",
    ("queue", "access_key"): "sqs_access_key",
    ("queue", "secret_key"): "sqs_secret_key",
    ("queue", "max_messages"): "sqs_max_messages",
    ("queue", "wait_time_seconds"): "sqs_wait_time_seconds",
    ("queue", "visibility_timeout_seconds"): "sqs_visibility_timeout_seconds",
    ("queue", "max_receive_count"): "max_receive_count",
    ("redis", "url"): "redis_url",
    ("openai", "api_key"): "openai_api_key",
    ("openai", "base_url"): "openai_base_url",
    ("openai", "chat_model"): "chat_model",
    ("embeddings", "backend"): "embedding_backend",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "batch_size"): "embedding_batch_size",
    ("ingest", "target_tokens"): "chunk_target_tokens",
    ("ingest", "overlap_tokens"): "chunk_overlap_tokens",
    ("ingest", "chars_per_token"): "chars_per_token",
    ("ingest", "max_error_message_length"): "max_error_message_length",
    ("chat", "retrieval_limit"): "retrieval_limit",
    ("chat", "max_question_length"): "max_question_length",
    ("chat", "source_policy"): "source_policy",
    ("chat", "max_sources"): "max_sources",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".docqa" / "docqa.db")

    s3_bucket: str = "documents"
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: str | None = None

    sqs_queue_url: str | None = None
    sqs_dlq_url: str | None = None
    sqs_region: str = "us-east-1"
    sqs_endpoint_url: str | None = None
    sqs_access_key: str | None = None
    sqs_secret_key: str | None = None
    sqs_max_messages: int = Field(default=5, ge=1, le=10)
    sqs_wait_time_seconds: int = Field(default=20, ge=0, le=20)
    sqs_visibility_timeout_seconds: int = Field(default=60, ge=0)
    max_receive_count: int = Field(default=5, ge=1)

    redis_url: str | None = None

    openai_api_key: str | None = None
    openai_base_url: str | None = None
    chat_model: str = "gpt-4o-mini"
    embedding_backend: Literal["openai", "hashed"] = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = Field(default=384, ge=1)
    embedding_batch_size: int = Field(default=64, ge=1)

    chunk_target_tokens: int = Field(default=800, ge=1)
    chunk_overlap_tokens: int = Field(default=120, ge=0)
    chars_per_token: int = Field(default=4, ge=1)
    max_error_message_length: int = Field(default=4000, ge=1)

    retrieval_limit: int = Field(default=5, ge=1, le=50)
    max_question_length: int = Field(default=2000, ge=1)
    source_policy: Literal["single", "per_document"] = "single"
    max_sources: int = Field(default=5, ge=1)

    model_config = {
        "validate_assignment": True,
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

    @model_validator(mode="after")
    def _check_chunk_budget(self) -> "Settings":
        if self.chunk_overlap_tokens >= self.chunk_target_tokens:
            raise ValueError("chunk_overlap_tokens must be smaller than chunk_target_tokens")
        return self

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
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with DOCQA_ prefix into Settings fields."""
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
