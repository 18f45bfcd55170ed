from pathlib import Path
from typing import List, Optional

import pytest

from backend.src.models.insight import InsightCreate
from backend.src.models.transformation import SourceType
from backend.src.services.errors import StorageUnavailableError
from backend.src.services.insight_store import InsightStore


def _insight(
    path: str,
    kind: str = "simple-summary",
    text: str = "An insight about the note.",
    mtime: int = 1000,
    embedding: Optional[List[float]] = None,
    source_type: SourceType = SourceType.DOCUMENT,
) -> InsightCreate:
    return InsightCreate(
        kind=kind,
        text=text,
        source_type=source_type,
        source_path=path,
        source_mtime=mtime,
        embedding=embedding,
    )


def test_store_assigns_id_and_round_trips_embedding(insight_store: InsightStore) -> None:
    stored = insight_store.store(_insight("notes/a.md", embedding=[0.5, 0.25]))

    assert stored.id > 0
    assert stored.embedding == [0.5, 0.25]
    assert stored.created_at == stored.updated_at

    fetched = insight_store.get_by_source_path("notes/a.md")
    assert [i.id for i in fetched] == [stored.id]


def test_store_strips_nul_characters(insight_store: InsightStore) -> None:
    stored = insight_store.store(_insight("notes/a.md", text="bad\x00text"))

    assert stored.text == "badtext"


def test_reads_are_newest_first(insight_store: InsightStore) -> None:
    first = insight_store.store(_insight("notes/a.md", mtime=1))
    second = insight_store.store(_insight("notes/a.md", mtime=2))

    assert [i.id for i in insight_store.get_by_source_path("notes/a.md")] == [second.id, first.id]
    assert [i.id for i in insight_store.get_all(limit=1)] == [second.id]


def test_find_matching_requires_exact_mtime_and_kind(insight_store: InsightStore) -> None:
    insight_store.store(_insight("notes/a.md", kind="simple-summary", mtime=10))

    assert insight_store.find_matching("notes/a.md", 10, "simple-summary") is not None
    assert insight_store.find_matching("notes/a.md", 11, "simple-summary") is None
    assert insight_store.find_matching("notes/a.md", 10, "key-insights") is None


def test_filters_by_kind_and_source_type(insight_store: InsightStore) -> None:
    insight_store.store(_insight("notes/a.md", kind="key-insights"))
    insight_store.store(_insight("notes", kind="hierarchical-summary", source_type=SourceType.FOLDER))

    assert [i.source_path for i in insight_store.get_by_kind("key-insights")] == ["notes/a.md"]
    assert [i.source_path for i in insight_store.get_by_source_type("folder")] == ["notes"]


def test_update_source_path_moves_all_insights(insight_store: InsightStore) -> None:
    insight_store.store(_insight("old.md", kind="simple-summary"))
    insight_store.store(_insight("old.md", kind="key-insights"))

    updated = insight_store.update_source_path("old.md", "new.md")

    assert updated == 2
    assert insight_store.get_by_source_path("old.md") == []
    assert len(insight_store.get_by_source_path("new.md")) == 2


def test_deletes_report_counts(insight_store: InsightStore) -> None:
    a = insight_store.store(_insight("a.md"))
    insight_store.store(_insight("a.md", kind="key-insights"))
    insight_store.store(_insight("b.md"))
    insight_store.store(_insight("c.md", kind="reflections"))

    assert insight_store.delete_by_id(a.id) == 1
    assert insight_store.delete_by_id(a.id) == 0
    assert insight_store.delete_by_path("a.md") == 1
    assert insight_store.delete_by_paths([]) == 0
    assert insight_store.delete_by_kind("reflections") == 1
    assert insight_store.clear_all() == 1
    assert insight_store.get_all() == []


def test_delete_by_paths_ignores_duplicates(insight_store: InsightStore) -> None:
    insight_store.store(_insight("a.md"))
    insight_store.store(_insight("b.md"))

    assert insight_store.delete_by_paths(["a.md", "a.md", "b.md", "missing.md"]) == 2


class TestSimilaritySearch:
    """Cosine search over stored embeddings."""

    @pytest.fixture
    def populated(self, insight_store: InsightStore) -> InsightStore:
        insight_store.store(_insight("exact.md", embedding=[1.0, 0.0]))
        insight_store.store(_insight("close.md", embedding=[0.8, 0.6], kind="key-insights"))
        insight_store.store(_insight("orthogonal.md", embedding=[0.0, 1.0]))
        insight_store.store(_insight("no-vector.md"))
        return insight_store

    def test_ranks_by_similarity_above_threshold(self, populated: InsightStore) -> None:
        results = populated.similarity_search([1.0, 0.0], min_similarity=0.3)

        assert [r.source_path for r in results] == ["exact.md", "close.md"]
        assert results[0].similarity == pytest.approx(1.0)
        assert results[1].similarity == pytest.approx(0.8)

    def test_threshold_is_strict(self, populated: InsightStore) -> None:
        results = populated.similarity_search([1.0, 0.0], min_similarity=1.0)

        assert results == []

    def test_respects_limit(self, populated: InsightStore) -> None:
        results = populated.similarity_search([1.0, 0.0], min_similarity=0.0, limit=1)

        assert [r.source_path for r in results] == ["exact.md"]

    def test_filters_by_paths_and_kinds(self, populated: InsightStore) -> None:
        by_path = populated.similarity_search([1.0, 0.0], source_paths=["close.md"])
        by_kind = populated.similarity_search([1.0, 0.0], kinds=["key-insights"])

        assert [r.source_path for r in by_path] == ["close.md"]
        assert [r.source_path for r in by_kind] == ["close.md"]

    def test_empty_allow_list_matches_nothing(self, populated: InsightStore) -> None:
        assert populated.similarity_search([1.0, 0.0], source_paths=[]) == []

    def test_equal_scores_keep_store_order(self, insight_store: InsightStore) -> None:
        first = insight_store.store(_insight("one.md", embedding=[1.0, 1.0]))
        second = insight_store.store(_insight("two.md", embedding=[1.0, 1.0]))

        results = insight_store.similarity_search([1.0, 1.0])

        assert [r.id for r in results] == [first.id, second.id]

    def test_skips_mismatched_dimensions(self, insight_store: InsightStore) -> None:
        insight_store.store(_insight("wide.md", embedding=[1.0, 0.0, 0.0]))

        assert insight_store.similarity_search([1.0, 0.0]) == []


def test_search_by_text_escapes_wildcards(insight_store: InsightStore) -> None:
    insight_store.store(_insight("a.md", text="Progress is 100% complete"))
    insight_store.store(_insight("b.md", text="Progress is 1000 complete"))

    results = insight_store.search_by_text("100%")

    assert [r.source_path for r in results] == ["a.md"]


def test_stats_group_by_kind_and_source_type(insight_store: InsightStore) -> None:
    insight_store.store(_insight("a.md", kind="simple-summary"))
    insight_store.store(_insight("b.md", kind="simple-summary"))
    insight_store.store(_insight("docs", kind="hierarchical-summary", source_type=SourceType.FOLDER))

    stats = insight_store.get_stats()

    assert stats.total == 3
    assert stats.by_kind == {"simple-summary": 2, "hierarchical-summary": 1}
    assert stats.by_source_type == {"document": 2, "folder": 1}


def test_clean_orphans_only_removes_missing_documents(insight_store: InsightStore) -> None:
    insight_store.store(_insight("kept.md"))
    insight_store.store(_insight("gone.md"))
    insight_store.store(_insight("gone.md", kind="key-insights"))
    insight_store.store(_insight("folder", source_type=SourceType.FOLDER))

    removed = insight_store.clean_orphans(lambda path: path == "kept.md")

    assert removed == 2
    remaining = sorted(i.source_path for i in insight_store.get_all())
    assert remaining == ["folder", "kept.md"]


def test_unwritable_location_raises_storage_unavailable(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = InsightStore(blocker / "insights.db")

    with pytest.raises(StorageUnavailableError):
        store.initialize()
