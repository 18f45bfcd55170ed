"""Exception taxonomy for the transformation and insight services.

Every error carries a stable ``code`` (an :class:`ErrorCode`) so the engine can
convert it into a failed ``TransformationResult`` without string matching.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..models.transformation import ErrorCode


class InsightEngineError(Exception):
    """Base class for transformation engine failures."""

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SourceNotFoundError(InsightEngineError):
    """The referenced document or folder does not exist."""

    code = ErrorCode.NOT_FOUND


class EmptyContentError(InsightEngineError):
    """Source content is empty after trimming."""

    code = ErrorCode.EMPTY_CONTENT


class ContentTooShortError(InsightEngineError):
    """Source content is below the minimum useful length."""

    code = ErrorCode.CONTENT_TOO_SHORT


class UnsupportedKindError(InsightEngineError):
    """The transformation kind is not registered."""

    code = ErrorCode.UNSUPPORTED_KIND


class UnsupportedSourceError(InsightEngineError):
    """The source reference variant cannot be handled."""

    code = ErrorCode.UNSUPPORTED_SOURCE


class ModelCallFailedError(InsightEngineError):
    """The model call failed or returned nothing usable."""

    code = ErrorCode.MODEL_CALL_FAILED


class AbortedError(InsightEngineError):
    """The caller's cancellation signal was observed."""

    code = ErrorCode.ABORTED


class StorageUnavailableError(InsightEngineError):
    """The insight store could not be reached. Always absorbed by callers."""

    code = ErrorCode.STORAGE_UNAVAILABLE


class CompletionError(InsightEngineError):
    """Raised by the completion client on provider failures."""

    code = ErrorCode.MODEL_CALL_FAILED


class EmbeddingError(InsightEngineError):
    """Raised by the embedding client on provider failures."""

    code = ErrorCode.STORAGE_UNAVAILABLE


__all__ = [
    "InsightEngineError",
    "SourceNotFoundError",
    "EmptyContentError",
    "ContentTooShortError",
    "UnsupportedKindError",
    "UnsupportedSourceError",
    "ModelCallFailedError",
    "AbortedError",
    "StorageUnavailableError",
    "CompletionError",
    "EmbeddingError",
]
