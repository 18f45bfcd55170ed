"""Bottom-up summaries of folders and workspaces.

``compose_sections`` is the pure part: given child summaries it builds the
parent's Markdown. ``HierarchicalAggregator`` walks the vault one level at a
time, schedules leaf and combine work through the shared limiter and feeds the
results to ``compose_sections``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import posixpath
from typing import List, Literal, Optional, Protocol, Sequence

from ..models.settings import ModelRef
from ..models.transformation import CollectionSpec
from .concurrency import ConcurrencyLimiter
from .errors import AbortedError, ModelCallFailedError, SourceNotFoundError
from .vault import VaultService, normalize_vault_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChildSummary:
    """Summary (or failure) of one child of a folder or workspace."""

    name: str
    kind: Literal["file", "folder"]
    text: Optional[str] = None
    error: Optional[str] = None


def compose_sections(sections: Sequence[ChildSummary]) -> Optional[str]:
    """Join child summaries into labeled sections, files before folders.

    Children with neither text nor error are omitted. Returns None when no
    section remains.
    """
    ordered = [s for s in sections if s.kind == "file"] + [
        s for s in sections if s.kind == "folder"
    ]
    parts: List[str] = []
    for section in ordered:
        if section.error is not None:
            parts.append(f"## {section.name}\n\n_Summary failed: {section.error}_")
        elif section.text and section.text.strip():
            parts.append(f"## {section.name}\n\n{section.text.strip()}")
    if not parts:
        return None
    return "\n\n".join(parts)


class SummaryBackend(Protocol):
    """Model-facing operations the aggregator delegates to."""

    async def summarize_file(self, path: str, model: Optional[ModelRef]) -> str:
        """Cache-checked concise summary of one document (persisted)."""
        ...

    async def combine_folder(self, folder: str, content: str, model: Optional[ModelRef]) -> str:
        """Hierarchical summary of composed child sections (persisted as a folder insight)."""
        ...


def _display_name(path: str) -> str:
    return posixpath.basename(path.rstrip("/")) or path or "/"


def _error_message(exc: BaseException) -> str:
    return getattr(exc, "message", None) or str(exc) or exc.__class__.__name__


def _compose_or_fail(sections: Sequence[ChildSummary], label: str) -> Optional[str]:
    """Compose ``sections``; raise when children exist but none produced text."""
    composed = compose_sections(sections)
    if composed is not None and not any(s.text and s.text.strip() for s in sections):
        raise ModelCallFailedError(
            f"All {len(sections)} children of {label} failed to summarize",
            {"source": label},
        )
    return composed


def _tag_matches(file_tags: Sequence[str], wanted: str) -> bool:
    return any(tag == wanted or tag.startswith(f"{wanted}/") for tag in file_tags)


class HierarchicalAggregator:
    """Recursive folder summarizer over a vault."""

    def __init__(self, backend: SummaryBackend, vault: VaultService) -> None:
        self.backend = backend
        self.vault = vault

    async def summarize_tree(
        self,
        folder: str,
        limiter: ConcurrencyLimiter,
        signal: Optional[asyncio.Event] = None,
        model: Optional[ModelRef] = None,
    ) -> Optional[str]:
        """Hierarchical summary of ``folder``, or None when it has no content.

        Raises:
            AbortedError: ``signal`` was set before the folder was started.
            ModelCallFailedError: Every child failed or the combine call failed.
        """
        if signal is not None and signal.is_set():
            raise AbortedError("Operation aborted")

        sections = await self._summarize_children(folder, limiter, signal, model)
        composed = _compose_or_fail(sections, folder or "/")
        if composed is None:
            logger.debug("Folder %s has no content to summarize", folder or "/")
            return None

        return await limiter.execute(
            lambda: self.backend.combine_folder(folder, composed, model), signal
        )

    async def collect_folder_content(
        self,
        folder: str,
        limiter: ConcurrencyLimiter,
        signal: Optional[asyncio.Event] = None,
        model: Optional[ModelRef] = None,
    ) -> Optional[str]:
        """Composed sections for the direct children of ``folder`` without a combine step."""
        folder = normalize_vault_path(folder)
        if not await asyncio.to_thread(self.vault.folder_exists, folder):
            raise SourceNotFoundError(f"Folder not found: {folder or '/'}", {"path": folder})
        sections = await self._summarize_children(folder, limiter, signal, model)
        return _compose_or_fail(sections, folder or "/")

    async def collect_collection_content(
        self,
        spec: CollectionSpec,
        limiter: ConcurrencyLimiter,
        signal: Optional[asyncio.Event] = None,
        model: Optional[ModelRef] = None,
    ) -> Optional[str]:
        """Composed sections for a workspace's folders and tagged files."""
        folders = list(dict.fromkeys(normalize_vault_path(f) for f in spec.folders))
        tagged_files = await self._files_with_tags(spec.tags)

        folder_tasks = [
            self._folder_section(folder, limiter, signal, model, name=folder or "/")
            for folder in folders
        ]
        file_tasks = [
            self._file_section(path, limiter, signal, model, name=path) for path in tagged_files
        ]
        sections = await asyncio.gather(*file_tasks, *folder_tasks)
        return _compose_or_fail(sections, spec.locator)

    async def _summarize_children(
        self,
        folder: str,
        limiter: ConcurrencyLimiter,
        signal: Optional[asyncio.Event],
        model: Optional[ModelRef],
    ) -> List[ChildSummary]:
        listing = await asyncio.to_thread(self.vault.list_direct_children, folder)
        file_tasks = [self._file_section(path, limiter, signal, model) for path in listing.files]
        folder_tasks = [
            self._folder_section(path, limiter, signal, model) for path in listing.subfolders
        ]
        return list(await asyncio.gather(*file_tasks, *folder_tasks))

    async def _file_section(
        self,
        path: str,
        limiter: ConcurrencyLimiter,
        signal: Optional[asyncio.Event],
        model: Optional[ModelRef],
        name: Optional[str] = None,
    ) -> ChildSummary:
        label = name or _display_name(path)
        try:
            text = await limiter.execute(lambda: self.backend.summarize_file(path, model), signal)
        except Exception as exc:
            logger.warning("Summary of %s failed: %s", path, exc)
            return ChildSummary(name=label, kind="file", error=_error_message(exc))
        return ChildSummary(name=label, kind="file", text=text)

    async def _folder_section(
        self,
        folder: str,
        limiter: ConcurrencyLimiter,
        signal: Optional[asyncio.Event],
        model: Optional[ModelRef],
        name: Optional[str] = None,
    ) -> ChildSummary:
        label = name or _display_name(folder)
        try:
            if not await asyncio.to_thread(self.vault.folder_exists, folder):
                raise SourceNotFoundError(f"Folder not found: {folder}", {"path": folder})
            text = await self.summarize_tree(folder, limiter, signal, model)
        except Exception as exc:
            logger.warning("Summary of folder %s failed: %s", folder, exc)
            return ChildSummary(name=label, kind="folder", error=_error_message(exc))
        return ChildSummary(name=label, kind="folder", text=text)

    async def _files_with_tags(self, tags: Sequence[str]) -> List[str]:
        if not tags:
            return []

        def _scan() -> List[str]:
            matches: List[str] = []
            for path in self.vault.list_files_under_prefix(""):
                file_tags = self.vault.get_tags_for_file(path)
                if any(_tag_matches(file_tags, tag) for tag in tags):
                    matches.append(path)
            return matches

        return await asyncio.to_thread(_scan)


__all__ = [
    "ChildSummary",
    "compose_sections",
    "HierarchicalAggregator",
    "SummaryBackend",
]
