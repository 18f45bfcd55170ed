"""Jinja2-based prompt template loader for transformations.

This service loads prompt templates from the backend/prompts/ directory and renders
them with context variables. It supports hot-reload (no caching) so prompts can be
edited without restarting the server.

Fallback inline prompts are provided for every transformation so the engine still
works when the prompts directory is missing.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import jinja2

logger = logging.getLogger(__name__)

# Default prompts directory relative to this file
# backend/src/services/prompt_loader.py -> backend/prompts/
DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parent.parent.parent / "prompts"

_LANGUAGE_LINE = "\n\nRespond in {{ user_language or 'English' }}."

INLINE_PROMPTS: Dict[str, str] = {
    "transformations/simple-summary.md": (
        "Summarize the content in a few clear, complete sentences. "
        "State the main topic first and keep the key facts and conclusions." + _LANGUAGE_LINE
    ),
    "transformations/dense-summary.md": (
        "Write a dense, information-rich summary of the content. Keep definitions, "
        "numbers, names and decisions; drop filler. Do not add information." + _LANGUAGE_LINE
    ),
    "transformations/hierarchical-summary.md": (
        "You receive summaries of the files and subfolders of one folder, each under a "
        "'## <name>' heading. Synthesize them into a two to four sentence summary of the "
        "folder as a whole, focusing on shared themes and relationships. "
        "Ignore failed sections." + _LANGUAGE_LINE
    ),
    "transformations/key-insights.md": (
        "Extract the key insights of the content. Start with the heading '# INSIGHTS' "
        "and list five to fifteen bullets ordered by importance." + _LANGUAGE_LINE
    ),
    "transformations/reflections.md": (
        "Reflect on the content. Start with the heading '# REFLECTIONS' and write bullets "
        "on implications, open questions and next steps." + _LANGUAGE_LINE
    ),
    "transformations/table-of-contents.md": (
        "Build a nested Markdown table of contents for the content, with a one-line "
        "description for each entry." + _LANGUAGE_LINE
    ),
    "transformations/paper-analysis.md": (
        "Analyze the paper using exactly these headings: PURPOSE, CONTRIBUTION, "
        "KEY FINDINGS, IMPLICATIONS, LIMITATIONS." + _LANGUAGE_LINE
    ),
    "transformations/concise-dense-summary.md": (
        "Render the content as an extremely concise summary: one dense paragraph of three "
        "to five sentences or three to five bullets with only the highest-level "
        "ideas." + _LANGUAGE_LINE
    ),
}


class PromptLoaderError(Exception):
    """Raised when a prompt cannot be loaded."""

    pass


class PromptLoader:
    """Load and render Jinja2 prompt templates.

    Supports:
    - Loading templates from filesystem (backend/prompts/)
    - Fallback to inline prompts when a template file doesn't exist
    - Hot-reload: templates are reloaded on every call (no caching)
    - Jinja2 rendering with context variables

    Example:
        >>> loader = PromptLoader()
        >>> prompt = loader.load("transformations/key-insights.md", {"user_language": "German"})
    """

    def __init__(self, prompts_dir: Optional[Path] = None) -> None:
        """Initialize the prompt loader.

        Args:
            prompts_dir: Directory containing prompt templates.
                        Defaults to backend/prompts/ relative to this file.
        """
        self.prompts_dir = prompts_dir or DEFAULT_PROMPTS_DIR

        if self.prompts_dir.is_dir():
            self.env = jinja2.Environment(
                loader=jinja2.FileSystemLoader(str(self.prompts_dir)),
                autoescape=False,  # Prompts are markdown, not HTML
                auto_reload=True,
                keep_trailing_newline=True,
            )
            logger.debug(
                "PromptLoader initialized with filesystem templates",
                extra={"prompts_dir": str(self.prompts_dir)},
            )
        else:
            self.env = None
            logger.warning(
                "Prompts directory not found, using inline fallbacks",
                extra={"prompts_dir": str(self.prompts_dir)},
            )

    def load(self, path: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Load and render a prompt template.

        Args:
            path: Relative path to the template file (e.g., "transformations/reflections.md").
            context: Dictionary of variables to render into the template.

        Returns:
            The rendered prompt string.

        Raises:
            PromptLoaderError: If the template cannot be loaded or rendered.
        """
        context = context or {}

        if self.env is not None:
            try:
                template = self.env.get_template(path)
                rendered = template.render(**context)
                logger.debug(
                    "Loaded prompt from filesystem",
                    extra={"path": path, "context_keys": list(context.keys())},
                )
                return rendered
            except jinja2.TemplateNotFound:
                logger.debug(
                    "Template not found in filesystem, trying inline fallback",
                    extra={"path": path},
                )
            except jinja2.TemplateError as e:
                logger.error(
                    "Failed to render template",
                    extra={"path": path, "error": str(e)},
                )
                raise PromptLoaderError(f"Failed to render template {path}: {e}") from e

        return self._get_inline_prompt(path, context)

    def _get_inline_prompt(self, path: str, context: Dict[str, Any]) -> str:
        """Render the inline fallback for ``path``.

        Raises:
            PromptLoaderError: If no inline fallback exists for the path.
        """
        template_str = INLINE_PROMPTS.get(path)

        if template_str is None:
            logger.warning(
                "No inline fallback for prompt path",
                extra={"path": path, "available": list(INLINE_PROMPTS.keys())},
            )
            raise PromptLoaderError(
                f"Prompt not found: {path}. "
                f"Available inline prompts: {list(INLINE_PROMPTS.keys())}"
            )

        try:
            rendered = jinja2.Template(template_str).render(**context)
            logger.debug(
                "Loaded inline fallback prompt",
                extra={"path": path, "context_keys": list(context.keys())},
            )
            return rendered
        except jinja2.TemplateError as e:
            logger.error(
                "Failed to render inline template",
                extra={"path": path, "error": str(e)},
            )
            raise PromptLoaderError(
                f"Failed to render inline template {path}: {e}"
            ) from e

    def list_available(self) -> Dict[str, list[str]]:
        """List available prompt templates.

        Returns:
            Dictionary with 'filesystem' and 'inline' keys containing lists
            of available template paths.
        """
        result: Dict[str, list[str]] = {
            "filesystem": [],
            "inline": sorted(INLINE_PROMPTS.keys()),
        }

        if self.prompts_dir.is_dir():
            for md_file in self.prompts_dir.rglob("*.md"):
                relative_path = md_file.relative_to(self.prompts_dir).as_posix()
                result["filesystem"].append(relative_path)

        return result


__all__ = ["PromptLoader", "PromptLoaderError", "DEFAULT_PROMPTS_DIR", "INLINE_PROMPTS"]
