"""Application configuration helpers."""

from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.settings import ModelProvider, ModelRef

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_VAULT_BASE = PROJECT_ROOT / "data" / "vault"
DEFAULT_INSIGHT_DB = PROJECT_ROOT / "data" / "insights.db"
DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL_ID = "anthropic/claude-3.5-haiku"
DEFAULT_EMBEDDING_MODEL = "openai/text-embedding-3-small"


class AppConfig(BaseModel):
    """Runtime configuration loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    vault_base_path: Path = Field(..., description="Root directory of the note vault")
    insight_db_path: Path = Field(
        default=DEFAULT_INSIGHT_DB, description="SQLite file holding cached insights"
    )
    prompts_dir: Optional[Path] = Field(
        None, description="Override of the prompt template directory"
    )
    model_provider: ModelProvider = Field(
        default=ModelProvider.OPENROUTER, description="Provider of the default model"
    )
    model_id: str = Field(default=DEFAULT_MODEL_ID, description="Default model identifier")
    openrouter_api_key: Optional[str] = Field(None, description="OpenRouter API key")
    openrouter_base_url: str = Field(
        default=DEFAULT_OPENROUTER_BASE_URL,
        description="Base URL of the OpenAI-compatible API",
    )
    google_api_key: Optional[str] = Field(None, description="Google Gemini API key")
    embedding_model: str = Field(
        default=DEFAULT_EMBEDDING_MODEL, description="Model used for insight embeddings"
    )
    max_concurrency: int = Field(
        default=3, ge=1, description="Maximum number of concurrent model calls"
    )
    user_language: str = Field(
        default="English", description="Language the model is asked to answer in"
    )
    request_timeout: float = Field(
        default=60.0, gt=0, description="Timeout for provider requests, in seconds"
    )

    @field_validator("vault_base_path", mode="before")
    @classmethod
    def _normalize_vault_path(cls, value: str | Path | None) -> Path:
        if value is None or value == "":
            raise ValueError("VAULT_BASE_PATH is required")
        if isinstance(value, Path):
            path = value
        else:
            path = Path(value)
        return path.expanduser().resolve()

    @field_validator("insight_db_path", mode="before")
    @classmethod
    def _normalize_db_path(cls, value: str | Path | None) -> Path:
        if value is None or value == "":
            return DEFAULT_INSIGHT_DB
        return Path(value).expanduser().resolve()

    @field_validator("prompts_dir", mode="before")
    @classmethod
    def _normalize_prompts_dir(cls, value: str | Path | None) -> Optional[Path]:
        if value is None or value == "":
            return None
        return Path(value).expanduser().resolve()

    @field_validator("openrouter_api_key", "google_api_key", mode="before")
    @classmethod
    def _blank_key_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @property
    def default_model(self) -> ModelRef:
        return ModelRef(provider=self.model_provider, model_id=self.model_id)


def _read_env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load and cache application configuration."""
    vault_base = _read_env("VAULT_BASE_PATH", str(DEFAULT_VAULT_BASE))
    insight_db = _read_env("INSIGHT_DB_PATH", str(DEFAULT_INSIGHT_DB))

    config = AppConfig(
        vault_base_path=vault_base,
        insight_db_path=insight_db,
        prompts_dir=_read_env("PROMPTS_DIR"),
        model_provider=_read_env("MODEL_PROVIDER", ModelProvider.OPENROUTER.value),
        model_id=_read_env("MODEL_ID", DEFAULT_MODEL_ID),
        openrouter_api_key=_read_env("OPENROUTER_API_KEY"),
        openrouter_base_url=_read_env("OPENROUTER_BASE_URL", DEFAULT_OPENROUTER_BASE_URL),
        google_api_key=_read_env("GOOGLE_API_KEY"),
        embedding_model=_read_env("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
        max_concurrency=_read_env("MAX_CONCURRENCY", "3"),
        user_language=_read_env("USER_LANGUAGE", "English"),
        request_timeout=_read_env("REQUEST_TIMEOUT", "60"),
    )
    # Ensure vault and database directories exist for downstream services.
    config.vault_base_path.mkdir(parents=True, exist_ok=True)
    config.insight_db_path.parent.mkdir(parents=True, exist_ok=True)
    return config


def reload_config() -> AppConfig:
    """Clear cached config (useful for tests) and reload."""
    get_config.cache_clear()
    return get_config()


__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "PROJECT_ROOT",
    "DEFAULT_VAULT_BASE",
    "DEFAULT_INSIGHT_DB",
]
