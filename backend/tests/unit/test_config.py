from pathlib import Path

import pytest

from backend.src.models.settings import ModelProvider
from backend.src.services import config as config_module


@pytest.fixture(autouse=True)
def restore_config_cache():
    """
    Ensure configuration cache is cleared between tests.
    """
    config_module.get_config.cache_clear()
    yield
    config_module.get_config.cache_clear()


@pytest.fixture
def isolated_env(monkeypatch, tmp_path: Path) -> Path:
    for key in (
        "OPENROUTER_API_KEY",
        "GOOGLE_API_KEY",
        "MODEL_PROVIDER",
        "MODEL_ID",
        "MAX_CONCURRENCY",
        "USER_LANGUAGE",
        "PROMPTS_DIR",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("VAULT_BASE_PATH", str(tmp_path / "vault"))
    monkeypatch.setenv("INSIGHT_DB_PATH", str(tmp_path / "db" / "insights.db"))
    return tmp_path


def test_get_config_reads_paths_and_defaults(isolated_env: Path) -> None:
    cfg = config_module.reload_config()

    assert cfg.vault_base_path == (isolated_env / "vault").resolve()
    assert cfg.vault_base_path.is_dir()
    assert cfg.insight_db_path.parent.is_dir()
    assert cfg.max_concurrency == 3
    assert cfg.user_language == "English"
    assert cfg.openrouter_api_key is None
    assert cfg.default_model.provider == ModelProvider.OPENROUTER


def test_get_config_is_cached(isolated_env: Path) -> None:
    assert config_module.get_config() is config_module.get_config()


def test_blank_api_key_is_treated_as_missing(monkeypatch, isolated_env: Path) -> None:
    monkeypatch.setenv("OPENROUTER_API_KEY", "   ")

    cfg = config_module.reload_config()

    assert cfg.openrouter_api_key is None


def test_provider_and_language_overrides(monkeypatch, isolated_env: Path) -> None:
    monkeypatch.setenv("MODEL_PROVIDER", "google")
    monkeypatch.setenv("MODEL_ID", "gemini-1.5-flash")
    monkeypatch.setenv("USER_LANGUAGE", "German")

    cfg = config_module.reload_config()

    assert cfg.default_model.provider == ModelProvider.GOOGLE
    assert cfg.default_model.model_id == "gemini-1.5-flash"
    assert cfg.user_language == "German"


def test_get_config_rejects_zero_concurrency(monkeypatch, isolated_env: Path) -> None:
    monkeypatch.setenv("MAX_CONCURRENCY", "0")

    with pytest.raises(ValueError):
        config_module.reload_config()


def test_empty_vault_path_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        config_module.AppConfig(vault_base_path="")
