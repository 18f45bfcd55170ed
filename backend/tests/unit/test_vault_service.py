from pathlib import Path

import pytest

from backend.src.services.config import AppConfig
from backend.src.services.vault import VaultService, sanitize_path


@pytest.fixture
def vault(app_config: AppConfig, write_note) -> VaultService:
    write_note("root.md", "---\ntags: [research, '#ml']\n---\nBody with #inline-tag and #project/alpha.")
    write_note("notes/a.md", "Alpha note")
    write_note("notes/b.txt", "Plain text note")
    write_note("notes/image.png", "not a document")
    write_note("notes/deep/c.markdown", "Deep note")
    write_note(".obsidian/config.md", "settings")
    write_note("notes/.trash/old.md", "deleted")
    (app_config.vault_base_path / "empty").mkdir()
    return VaultService(config=app_config)


def test_sanitize_path_blocks_escape(vault_root: Path) -> None:
    with pytest.raises(ValueError):
        sanitize_path(vault_root, "../outside.md")


def test_exists_only_for_documents(vault: VaultService) -> None:
    assert vault.exists("notes/a.md")
    assert vault.exists("/notes/b.txt")
    assert not vault.exists("notes/image.png")
    assert not vault.exists("notes")
    assert not vault.exists("../escape.md")


def test_read_strips_frontmatter(vault: VaultService) -> None:
    body = vault.read("root.md")

    assert "tags:" not in body
    assert body.startswith("Body with")


def test_read_missing_document_raises(vault: VaultService) -> None:
    with pytest.raises(FileNotFoundError):
        vault.read("missing.md")


def test_modification_time_is_integer_milliseconds(vault: VaultService, vault_root: Path) -> None:
    mtime = vault.get_modification_time("notes/a.md")

    assert isinstance(mtime, int)
    assert mtime == int((vault_root / "notes/a.md").stat().st_mtime * 1000)


def test_list_direct_children_skips_hidden_and_non_documents(vault: VaultService) -> None:
    listing = vault.list_direct_children("notes")

    assert listing.files == ["notes/a.md", "notes/b.txt"]
    assert listing.subfolders == ["notes/deep"]


def test_list_direct_children_of_root(vault: VaultService) -> None:
    listing = vault.list_direct_children("")

    assert listing.files == ["root.md"]
    assert listing.subfolders == ["empty", "notes"]


def test_list_files_under_prefix_is_recursive(vault: VaultService) -> None:
    assert vault.list_files_under_prefix("notes") == [
        "notes/a.md",
        "notes/b.txt",
        "notes/deep/c.markdown",
    ]
    assert "root.md" in vault.list_files_under_prefix("")
    assert vault.list_files_under_prefix("missing") == []


def test_list_folders_under_prefix(vault: VaultService) -> None:
    assert vault.list_folders_under_prefix("notes") == ["notes/deep"]


def test_tags_from_frontmatter_and_body(vault: VaultService) -> None:
    tags = vault.get_tags_for_file("root.md")

    assert tags == ["research", "ml", "inline-tag", "project/alpha"]


def test_folder_exists(vault: VaultService) -> None:
    assert vault.folder_exists("notes/deep")
    assert vault.folder_exists("")
    assert not vault.folder_exists("notes/a.md")
