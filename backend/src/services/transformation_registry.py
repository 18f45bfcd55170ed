"""Registry of transformation kinds, their prompts and content budgets."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Union

from ..models.transformation import (
    AvailableTransformation,
    TransformationDefinition,
    TransformationKind,
)
from .errors import UnsupportedKindError
from .prompt_loader import PromptLoader

logger = logging.getLogger(__name__)

# kind -> (description, max content tokens)
DEFINITION_TABLE: Dict[TransformationKind, tuple[str, int]] = {
    TransformationKind.SIMPLE_SUMMARY: (
        "Generates a short summary of the content",
        2000,
    ),
    TransformationKind.DENSE_SUMMARY: (
        "Creates a dense, information-rich summary that keeps the substance of the content",
        4000,
    ),
    TransformationKind.HIERARCHICAL_SUMMARY: (
        "Synthesizes the summaries of a folder's files and subfolders into one overview",
        8000,
    ),
    TransformationKind.KEY_INSIGHTS: (
        "Extracts the key insights of the content as a bullet list",
        3000,
    ),
    TransformationKind.REFLECTIONS: (
        "Reflects on implications, open questions and next steps raised by the content",
        2500,
    ),
    TransformationKind.TABLE_OF_CONTENTS: (
        "Builds a navigable table of contents with one-line descriptions",
        2000,
    ),
    TransformationKind.PAPER_ANALYSIS: (
        "Analyzes an academic paper: purpose, contribution, findings, implications, limitations",
        3000,
    ),
    TransformationKind.CONCISE_DENSE_SUMMARY: (
        "Creates an extremely concise summary with only the most essential concepts",
        4000,
    ),
}


def parse_kind(kind: Union[str, TransformationKind]) -> TransformationKind:
    """Coerce a string to a TransformationKind, raising UnsupportedKindError."""
    if isinstance(kind, TransformationKind):
        return kind
    try:
        return TransformationKind(kind)
    except ValueError as exc:
        raise UnsupportedKindError(
            f"Unsupported transformation kind: {kind}",
            {"kind": kind, "available": [k.value for k in TransformationKind]},
        ) from exc


class TransformationRegistry:
    """Immutable table of transformation definitions.

    Prompt templates are rendered once at construction with the configured
    response language.
    """

    def __init__(
        self,
        prompt_loader: Optional[PromptLoader] = None,
        user_language: str = "English",
    ) -> None:
        loader = prompt_loader or PromptLoader()
        self.user_language = user_language
        self._definitions: Dict[TransformationKind, TransformationDefinition] = {}
        for kind, (description, max_tokens) in DEFINITION_TABLE.items():
            prompt = loader.load(
                f"transformations/{kind.value}.md", {"user_language": user_language}
            ).strip()
            self._definitions[kind] = TransformationDefinition(
                kind=kind,
                prompt_template=prompt,
                description=description,
                max_content_tokens=max_tokens,
            )
        logger.debug("Registered %d transformations", len(self._definitions))

    def get(self, kind: Union[str, TransformationKind]) -> TransformationDefinition:
        return self._definitions[parse_kind(kind)]

    def list_available(self) -> List[AvailableTransformation]:
        return [
            AvailableTransformation(kind=definition.kind, description=definition.description)
            for definition in self._definitions.values()
        ]


__all__ = ["TransformationRegistry", "parse_kind", "DEFINITION_TABLE"]
