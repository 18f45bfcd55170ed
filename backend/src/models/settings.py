"""Pydantic models for model provider selection."""

from enum import Enum

from pydantic import BaseModel, Field


class ModelProvider(str, Enum):
    """Available model providers."""
    OPENROUTER = "openrouter"
    GOOGLE = "google"


class ModelRef(BaseModel):
    """A provider plus model identifier used for a completion call."""
    provider: ModelProvider = Field(
        default=ModelProvider.OPENROUTER,
        description="Provider serving the model"
    )
    model_id: str = Field(
        ...,
        min_length=1,
        description="Model identifier (e.g., 'deepseek/deepseek-chat')"
    )


__all__ = ["ModelProvider", "ModelRef"]
