"""Token-bounded truncation of source content.

Content over its token budget is cut at a character position estimated from
the observed characters-per-token ratio, preferably on a sentence or paragraph
boundary, and re-measured until it fits.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Callable, Optional

import tiktoken

from .errors import ContentTooShortError, EmptyContentError

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 12000
MIN_CONTENT_LENGTH = 100
SAFETY_MARGIN = 0.9
BOUNDARY_THRESHOLD = 0.8
SENTENCE_TERMINATORS = (".", "!", "?", "。", "！", "？")
PARAGRAPH_BREAK = "\n\n"

TokenCounter = Callable[[str], int]

# Singleton tokenizer (encoding is expensive to load)
_TOKENIZER: tiktoken.Encoding | None = None


def get_tokenizer() -> tiktoken.Encoding:
    """Get or create the shared cl100k_base tokenizer."""
    global _TOKENIZER
    if _TOKENIZER is None:
        _TOKENIZER = tiktoken.get_encoding("cl100k_base")
    return _TOKENIZER


def count_tokens(text: str) -> int:
    """Count tokens in text using tiktoken cl100k_base encoding."""
    if not text:
        return 0
    return len(get_tokenizer().encode(text))


@dataclass(frozen=True)
class ProcessedContent:
    text: str
    truncated: bool
    original_tokens: int
    processed_tokens: int


def _last_boundary(text: str) -> int:
    """Index just past the last sentence terminator or paragraph break, or -1."""
    best = -1
    for terminator in SENTENCE_TERMINATORS:
        index = text.rfind(terminator)
        if index != -1:
            best = max(best, index + len(terminator))
    index = text.rfind(PARAGRAPH_BREAK)
    if index != -1:
        best = max(best, index + len(PARAGRAPH_BREAK))
    return best


class ContentProcessor:
    """Validate and truncate content against a token budget."""

    def __init__(
        self,
        token_counter: Optional[TokenCounter] = None,
        default_max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self._count = token_counter or count_tokens
        self.default_max_tokens = default_max_tokens

    def count_tokens(self, text: str) -> int:
        return self._count(text)

    def validate_content(self, text: str) -> None:
        """Raise when content is blank or too short to be worth transforming."""
        if not (text or "").strip():
            raise EmptyContentError("Content is empty")
        # Raw length, surrounding whitespace included.
        if len(text) < MIN_CONTENT_LENGTH:
            raise ContentTooShortError(
                f"Content is too short ({len(text)} characters, minimum {MIN_CONTENT_LENGTH})",
                {"length": len(text), "minimum": MIN_CONTENT_LENGTH},
            )

    def process_content(self, text: str, max_tokens: Optional[int] = None) -> ProcessedContent:
        """Return ``text`` unchanged when within budget, otherwise a truncated prefix.

        The result always satisfies ``processed_tokens <= max_tokens``.
        """
        budget = max_tokens or self.default_max_tokens
        original_tokens = self._count(text)
        if original_tokens <= budget:
            return ProcessedContent(text, False, original_tokens, original_tokens)

        ratio = len(text) / original_tokens
        limit = math.floor(budget * ratio * SAFETY_MARGIN)
        cut = text[:limit]

        boundary = _last_boundary(cut)
        if boundary > limit * BOUNDARY_THRESHOLD:
            cut = text[:boundary]

        if len(cut) < MIN_CONTENT_LENGTH:
            safe_limit = max(MIN_CONTENT_LENGTH, math.floor(budget * ratio * BOUNDARY_THRESHOLD))
            cut = text[: min(safe_limit, len(text))]

        tokens = self._count(cut)
        if tokens > budget:
            cut = text[: math.floor(budget * len(cut) / tokens)]
            tokens = self._count(cut)

        # Ratio estimates can still overshoot on skewed text; shrink until it fits.
        while tokens > budget and cut:
            shrunk = math.floor(len(cut) * budget / tokens)
            cut = cut[: min(shrunk, len(cut) - 1)]
            tokens = self._count(cut)

        logger.debug(
            "Truncated content from %d to %d tokens (%d characters)",
            original_tokens,
            tokens,
            len(cut),
        )
        return ProcessedContent(cut, True, original_tokens, tokens)


__all__ = [
    "ContentProcessor",
    "ProcessedContent",
    "count_tokens",
    "get_tokenizer",
    "DEFAULT_MAX_TOKENS",
    "MIN_CONTENT_LENGTH",
]
