"""Shared fixtures: a temporary vault, a SQLite insight store and fake providers."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from backend.src.services.concurrency import ConcurrencyLimiter
from backend.src.services.config import AppConfig
from backend.src.services.content_processor import ContentProcessor
from backend.src.services.insight_store import InsightStore
from backend.src.services.transformation_engine import TransformationEngine
from backend.src.services.vault import VaultService
from backend.tests.fakes import FakeCompletion, FakeEmbeddings, char_tokens


@pytest.fixture
def vault_root(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def app_config(tmp_path: Path, vault_root: Path) -> AppConfig:
    return AppConfig(
        vault_base_path=vault_root,
        insight_db_path=tmp_path / "insights.db",
        openrouter_api_key="test-key",
        max_concurrency=2,
    )


@pytest.fixture
def write_note(vault_root: Path) -> Callable[[str, str], Path]:
    def _write(relative: str, content: str) -> Path:
        path = vault_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def insight_store(app_config: AppConfig) -> InsightStore:
    store = InsightStore(app_config.insight_db_path)
    store.initialize()
    return store


@pytest.fixture
def fake_completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture
def fake_embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def engine(
    app_config: AppConfig,
    insight_store: InsightStore,
    fake_completion: FakeCompletion,
    fake_embeddings: FakeEmbeddings,
) -> TransformationEngine:
    return TransformationEngine(
        app_config,
        vault=VaultService(app_config),
        store=insight_store,
        completion=fake_completion,
        embeddings=fake_embeddings,
        processor=ContentProcessor(token_counter=char_tokens),
        limiter=ConcurrencyLimiter(app_config.max_concurrency),
    )
