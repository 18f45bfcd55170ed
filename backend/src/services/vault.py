"""Filesystem vault access for transformations.

Paths handed to this service are vault-relative POSIX strings. An empty string
or ``"/"`` names the vault root.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import re
from typing import Any, Iterable, List, Set

import frontmatter

from .config import AppConfig, get_config

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSIONS = {".md", ".markdown", ".txt"}
SKIPPED_FOLDERS = {".obsidian", ".trash"}
INLINE_TAG_PATTERN = re.compile(r"(?:^|\s)#([A-Za-z0-9_][\w/\-]*)")


@dataclass
class FolderListing:
    """Direct children of a folder, as vault-relative paths."""

    files: List[str] = field(default_factory=list)
    subfolders: List[str] = field(default_factory=list)


def normalize_vault_path(path: str | None) -> str:
    """Return a vault-relative path with no leading or trailing slash."""
    if not path:
        return ""
    cleaned = path.replace("\\", "/").strip().strip("/")
    return cleaned


def sanitize_path(vault_root: Path, relative_path: str) -> Path:
    """
    Resolve a vault-relative path within the vault.

    Raises ValueError if the resolved path escapes the vault root.
    """
    vault = vault_root.resolve()
    full_path = (vault / normalize_vault_path(relative_path)).resolve()
    if full_path != vault and vault not in full_path.parents:
        raise ValueError(f"Path escapes vault root: {relative_path}")
    return full_path


def _is_hidden(name: str) -> bool:
    return name.startswith(".") or name in SKIPPED_FOLDERS


def _is_document(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in DOCUMENT_EXTENSIONS


def _normalize_tags(raw: Any) -> Iterable[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        candidates = re.split(r"[,\s]+", raw)
    elif isinstance(raw, (list, tuple)):
        candidates = [str(item) for item in raw if item is not None]
    else:
        return []
    return [tag.strip().lstrip("#") for tag in candidates if tag and tag.strip().lstrip("#")]


class VaultService:
    """Read-only access to the note vault used as the transformation file store."""

    def __init__(self, config: AppConfig | None = None, vault_root: Path | None = None) -> None:
        if vault_root is None:
            vault_root = (config or get_config()).vault_base_path
        self.vault_root = vault_root.resolve()
        self.vault_root.mkdir(parents=True, exist_ok=True)

    def resolve(self, path: str) -> Path:
        return sanitize_path(self.vault_root, path)

    def _relative(self, absolute: Path) -> str:
        return absolute.relative_to(self.vault_root).as_posix()

    def exists(self, path: str) -> bool:
        """Return True when ``path`` names an existing document."""
        try:
            return _is_document(self.resolve(path))
        except ValueError:
            return False

    def folder_exists(self, path: str) -> bool:
        try:
            return self.resolve(path).is_dir()
        except ValueError:
            return False

    def read(self, path: str) -> str:
        """Read a document body with any frontmatter removed."""
        absolute_path = self.resolve(path)
        if not _is_document(absolute_path):
            raise FileNotFoundError(f"Document not found: {path}")
        raw = absolute_path.read_text(encoding="utf-8", errors="replace")
        if absolute_path.suffix.lower() == ".txt":
            return raw
        try:
            return frontmatter.loads(raw).content or ""
        except Exception as exc:  # malformed frontmatter still has a readable body
            logger.debug("Frontmatter parse failed for %s: %s", path, exc)
            return raw

    def get_modification_time(self, path: str) -> int:
        """Modification time of a document in integer milliseconds."""
        absolute_path = self.resolve(path)
        if not absolute_path.exists():
            raise FileNotFoundError(f"Document not found: {path}")
        return int(absolute_path.stat().st_mtime * 1000)

    def list_direct_children(self, folder: str) -> FolderListing:
        """List documents and visible subfolders directly inside ``folder``."""
        folder_path = self.resolve(folder)
        listing = FolderListing()
        if not folder_path.is_dir():
            return listing
        for child in sorted(folder_path.iterdir(), key=lambda p: p.name.lower()):
            if child.is_dir():
                if not _is_hidden(child.name):
                    listing.subfolders.append(self._relative(child))
            elif _is_document(child):
                listing.files.append(self._relative(child))
        return listing

    def list_files_under_prefix(self, prefix: str) -> List[str]:
        """Every document under ``prefix`` at any depth, hidden folders excluded."""
        base = self.resolve(prefix)
        if not base.is_dir():
            return []
        results: List[str] = []
        for file_path in base.rglob("*"):
            relative_parts = file_path.relative_to(base).parts
            if any(_is_hidden(part) for part in relative_parts[:-1]):
                continue
            if _is_document(file_path):
                results.append(self._relative(file_path))
        return sorted(results, key=str.lower)

    def list_folders_under_prefix(self, prefix: str) -> List[str]:
        """Every visible subfolder under ``prefix`` at any depth."""
        base = self.resolve(prefix)
        if not base.is_dir():
            return []
        results: List[str] = []
        for folder_path in base.rglob("*"):
            if not folder_path.is_dir():
                continue
            if any(_is_hidden(part) for part in folder_path.relative_to(base).parts):
                continue
            results.append(self._relative(folder_path))
        return sorted(results, key=str.lower)

    def get_tags_for_file(self, path: str) -> List[str]:
        """Frontmatter ``tags`` plus inline ``#tags``, without the leading '#'."""
        absolute_path = self.resolve(path)
        if not _is_document(absolute_path):
            return []
        raw = absolute_path.read_text(encoding="utf-8", errors="replace")
        tags: List[str] = []
        seen: Set[str] = set()
        body = raw
        try:
            post = frontmatter.loads(raw)
            body = post.content or ""
            frontmatter_tags = _normalize_tags(post.metadata.get("tags"))
        except Exception as exc:
            logger.debug("Frontmatter parse failed for %s: %s", path, exc)
            frontmatter_tags = []
        for tag in list(frontmatter_tags) + INLINE_TAG_PATTERN.findall(body):
            if tag not in seen:
                seen.add(tag)
                tags.append(tag)
        return tags


__all__ = [
    "VaultService",
    "FolderListing",
    "normalize_vault_path",
    "sanitize_path",
    "DOCUMENT_EXTENSIONS",
]
