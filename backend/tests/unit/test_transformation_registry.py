import pytest

from backend.src.models.transformation import TransformationKind
from backend.src.services.errors import UnsupportedKindError
from backend.src.services.prompt_loader import PromptLoader
from backend.src.services.transformation_registry import (
    DEFINITION_TABLE,
    TransformationRegistry,
    parse_kind,
)


@pytest.fixture
def registry() -> TransformationRegistry:
    return TransformationRegistry(PromptLoader(), user_language="German")


def test_every_kind_is_registered(registry: TransformationRegistry) -> None:
    assert {item.kind for item in registry.list_available()} == set(TransformationKind)
    assert set(DEFINITION_TABLE) == set(TransformationKind)


@pytest.mark.parametrize(
    ("kind", "budget"),
    [
        ("simple-summary", 2000),
        ("dense-summary", 4000),
        ("hierarchical-summary", 8000),
        ("key-insights", 3000),
        ("reflections", 2500),
        ("table-of-contents", 2000),
        ("paper-analysis", 3000),
        ("concise-dense-summary", 4000),
    ],
)
def test_token_budgets(registry: TransformationRegistry, kind: str, budget: int) -> None:
    assert registry.get(kind).max_content_tokens == budget


def test_get_accepts_enum_and_string(registry: TransformationRegistry) -> None:
    assert registry.get(TransformationKind.KEY_INSIGHTS) is registry.get("key-insights")


def test_prompts_are_rendered_with_language(registry: TransformationRegistry) -> None:
    for item in registry.list_available():
        prompt = registry.get(item.kind).prompt_template
        assert "{{" not in prompt
        assert prompt.endswith("Respond in German.")


def test_unknown_kind_raises(registry: TransformationRegistry) -> None:
    with pytest.raises(UnsupportedKindError) as exc_info:
        registry.get("limerick")

    assert exc_info.value.details["kind"] == "limerick"
    assert "simple-summary" in exc_info.value.details["available"]


def test_parse_kind_passes_enum_through() -> None:
    assert parse_kind(TransformationKind.REFLECTIONS) is TransformationKind.REFLECTIONS
    assert parse_kind("reflections") is TransformationKind.REFLECTIONS


def test_missing_prompts_dir_uses_inline_templates(tmp_path) -> None:
    registry = TransformationRegistry(PromptLoader(tmp_path / "nowhere"), user_language="French")

    assert registry.get("key-insights").prompt_template.endswith("Respond in French.")
    assert "# INSIGHTS" in registry.get("key-insights").prompt_template
