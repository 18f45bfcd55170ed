"""Pydantic models for transformations and the sources they run against.

A transformation turns a document, a folder, or a named workspace of folders
and tags into an LLM-derived artifact (a summary, a list of insights, a table
of contents, ...). These models describe what is transformed, how, and what
comes back.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .settings import ModelRef

WORKSPACE_PREFIX = "workspace:"


class TransformationKind(str, Enum):
    """Closed set of artifact types the engine can produce."""

    SIMPLE_SUMMARY = "simple-summary"
    DENSE_SUMMARY = "dense-summary"
    HIERARCHICAL_SUMMARY = "hierarchical-summary"
    KEY_INSIGHTS = "key-insights"
    REFLECTIONS = "reflections"
    TABLE_OF_CONTENTS = "table-of-contents"
    PAPER_ANALYSIS = "paper-analysis"
    CONCISE_DENSE_SUMMARY = "concise-dense-summary"


class SourceType(str, Enum):
    """Kind of source an insight was derived from."""

    DOCUMENT = "document"
    FOLDER = "folder"
    WORKSPACE = "workspace"


class ErrorCode(str, Enum):
    """Typed failure reasons reported in a TransformationResult."""

    NOT_FOUND = "not_found"
    EMPTY_CONTENT = "empty_content"
    CONTENT_TOO_SHORT = "content_too_short"
    UNSUPPORTED_KIND = "unsupported_kind"
    UNSUPPORTED_SOURCE = "unsupported_source"
    MODEL_CALL_FAILED = "model_call_failed"
    ABORTED = "aborted"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    INTERNAL = "internal_error"


class TransformationDefinition(BaseModel):
    """Immutable prompt template and content budget for one kind."""

    model_config = ConfigDict(frozen=True)

    kind: TransformationKind
    prompt_template: str = Field(..., description="System instruction sent to the model")
    description: str = Field(..., description="Human readable description for tool pickers")
    max_content_tokens: int = Field(..., ge=1, description="Token budget for the source content")


class CollectionItem(BaseModel):
    """A single member of a workspace: a folder path or a tag."""

    type: Literal["folder", "tag"]
    content: str = Field(..., min_length=1, description="Folder path or tag name")


class CollectionSpec(BaseModel):
    """A named workspace bundling folders and tag filters."""

    name: str = Field(..., min_length=1)
    items: List[CollectionItem] = Field(default_factory=list)

    @property
    def locator(self) -> str:
        return f"{WORKSPACE_PREFIX}{self.name}"

    @property
    def folders(self) -> List[str]:
        return [item.content for item in self.items if item.type == "folder"]

    @property
    def tags(self) -> List[str]:
        return [item.content.lstrip("#") for item in self.items if item.type == "tag"]


class DocumentSource(BaseModel):
    """A single note or text file in the vault."""

    type: Literal["document"] = "document"
    path: str = Field(..., min_length=1)

    @property
    def locator(self) -> str:
        return self.path


class FolderSource(BaseModel):
    """A vault folder, summarized through its direct children."""

    type: Literal["folder"] = "folder"
    path: str = Field("", description="Vault-relative folder path; empty for the vault root")

    @field_validator("path")
    @classmethod
    def _strip_slashes(cls, value: str) -> str:
        return value.strip().strip("/")

    @property
    def locator(self) -> str:
        return self.path or "/"


class CollectionSource(BaseModel):
    """A named workspace with no backing file."""

    type: Literal["collection"] = "collection"
    spec: CollectionSpec

    @property
    def locator(self) -> str:
        return self.spec.locator


SourceReference = Annotated[
    Union[DocumentSource, FolderSource, CollectionSource],
    Field(discriminator="type"),
]


class TransformationOptions(BaseModel):
    """Per-call overrides for a transformation."""

    model: Optional[ModelRef] = Field(None, description="Model override; defaults to the configured model")
    max_content_tokens: Optional[int] = Field(
        None, ge=1, description="Override of the definition's content token budget"
    )
    persist: bool = Field(False, description="Store the result as an insight in the background")


class TransformationResult(BaseModel):
    """Outcome of a single transformation. Failures are values, not exceptions."""

    success: bool
    result: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    truncated: bool = False
    original_tokens: int = 0
    processed_tokens: int = 0
    from_cache: bool = False

    @classmethod
    def failure(
        cls,
        error: str,
        code: ErrorCode,
        *,
        truncated: bool = False,
        original_tokens: int = 0,
        processed_tokens: int = 0,
    ) -> "TransformationResult":
        return cls(
            success=False,
            error=error,
            error_code=code,
            truncated=truncated,
            original_tokens=original_tokens,
            processed_tokens=processed_tokens,
        )


class TransformRequest(BaseModel):
    """Request body for running one transformation."""

    source: SourceReference
    kind: str = Field(..., description="Transformation kind, e.g. 'key-insights'")
    options: TransformationOptions = Field(default_factory=TransformationOptions)


class BatchTransformRequest(BaseModel):
    """Request body for running several transformations on one source."""

    source: SourceReference
    kinds: List[str] = Field(..., min_length=1)
    options: TransformationOptions = Field(default_factory=TransformationOptions)


class AvailableTransformation(BaseModel):
    """Kind and description pair for discovery."""

    kind: TransformationKind
    description: str


BatchTransformResponse = Dict[str, TransformationResult]


__all__ = [
    "WORKSPACE_PREFIX",
    "TransformationKind",
    "SourceType",
    "ErrorCode",
    "TransformationDefinition",
    "CollectionItem",
    "CollectionSpec",
    "DocumentSource",
    "FolderSource",
    "CollectionSource",
    "SourceReference",
    "TransformationOptions",
    "TransformationResult",
    "TransformRequest",
    "BatchTransformRequest",
    "AvailableTransformation",
    "BatchTransformResponse",
]
