"""SQLite persistence for source insights."""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import sqlite3
from typing import Callable, Iterable, List, Optional, Sequence

import numpy as np

from ..models.insight import Insight, InsightCreate, InsightStats, ScoredInsight
from ..models.transformation import SourceType
from .errors import StorageUnavailableError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_INSIGHT_DB_PATH = PROJECT_ROOT / "data" / "insights.db"

DDL_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS source_insights (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        insight_type TEXT NOT NULL,
        insight TEXT NOT NULL,
        source_type TEXT NOT NULL,
        source_path TEXT NOT NULL,
        source_mtime INTEGER NOT NULL,
        embedding TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_insights_path ON source_insights(source_path)",
    "CREATE INDEX IF NOT EXISTS idx_insights_type ON source_insights(insight_type)",
    "CREATE INDEX IF NOT EXISTS idx_insights_source_type ON source_insights(source_type)",
    "CREATE INDEX IF NOT EXISTS idx_insights_path_type ON source_insights(source_path, insight_type, source_mtime)",
)

_COLUMNS = (
    "id, insight_type, insight, source_type, source_path, source_mtime, "
    "embedding, created_at, updated_at"
)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def _placeholders(values: Sequence[object]) -> str:
    return ",".join("?" for _ in values)


def _row_to_insight(row: sqlite3.Row) -> Insight:
    embedding = json.loads(row["embedding"]) if row["embedding"] else None
    return Insight(
        id=row["id"],
        kind=row["insight_type"],
        text=row["insight"],
        source_type=SourceType(row["source_type"]),
        source_path=row["source_path"],
        source_mtime=row["source_mtime"],
        embedding=embedding,
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def cosine_similarity(v1: np.ndarray, v2: np.ndarray) -> float:
    norm1 = np.linalg.norm(v1)
    norm2 = np.linalg.norm(v2)
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return float(np.dot(v1, v2) / (norm1 * norm2))


class InsightStore:
    """Append-only table of insights keyed by source path, kind and mtime.

    Methods are synchronous; async callers run them with ``asyncio.to_thread``.
    Connection failures surface as StorageUnavailableError.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        self.db_path = Path(db_path) if db_path else DEFAULT_INSIGHT_DB_PATH
        self._initialized = False

    def connect(self) -> sqlite3.Connection:
        """Return a sqlite3 connection with the proper data directory created."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
        except (OSError, sqlite3.Error) as exc:
            raise StorageUnavailableError(
                f"Insight store unavailable: {exc}", {"db_path": str(self.db_path)}
            ) from exc
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> Path:
        """Create the insight table and indexes."""
        conn = self.connect()
        try:
            with conn:
                for statement in DDL_STATEMENTS:
                    conn.execute(statement)
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Failed to initialize insight store: {exc}") from exc
        finally:
            conn.close()
        self._initialized = True
        return self.db_path

    def _query(self, sql: str, params: Iterable[object] = ()) -> List[sqlite3.Row]:
        if not self._initialized:
            self.initialize()
        conn = self.connect()
        try:
            return conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Insight query failed: {exc}") from exc
        finally:
            conn.close()

    def _execute(self, sql: str, params: Iterable[object] = ()) -> sqlite3.Cursor:
        if not self._initialized:
            self.initialize()
        conn = self.connect()
        try:
            with conn:
                return conn.execute(sql, tuple(params))
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Insight update failed: {exc}") from exc
        finally:
            conn.close()

    def _delete(self, sql: str, params: Iterable[object] = ()) -> int:
        return max(self._execute(sql, params).rowcount, 0)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_source_path(self, source_path: str) -> List[Insight]:
        rows = self._query(
            f"SELECT {_COLUMNS} FROM source_insights WHERE source_path = ? ORDER BY id DESC",
            (source_path,),
        )
        return [_row_to_insight(row) for row in rows]

    def get_by_kind(self, kind: str) -> List[Insight]:
        rows = self._query(
            f"SELECT {_COLUMNS} FROM source_insights WHERE insight_type = ? ORDER BY id DESC",
            (kind,),
        )
        return [_row_to_insight(row) for row in rows]

    def get_by_source_type(self, source_type: SourceType | str) -> List[Insight]:
        rows = self._query(
            f"SELECT {_COLUMNS} FROM source_insights WHERE source_type = ? ORDER BY id DESC",
            (SourceType(source_type).value,),
        )
        return [_row_to_insight(row) for row in rows]

    def get_all(self, limit: Optional[int] = None) -> List[Insight]:
        """All insights, newest first."""
        sql = f"SELECT {_COLUMNS} FROM source_insights ORDER BY id DESC"
        params: tuple[object, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        return [_row_to_insight(row) for row in self._query(sql, params)]

    def find_matching(self, source_path: str, source_mtime: int, kind: str) -> Optional[Insight]:
        """Newest insight for exactly this (path, mtime, kind), if any."""
        rows = self._query(
            f"SELECT {_COLUMNS} FROM source_insights "
            "WHERE source_path = ? AND source_mtime = ? AND insight_type = ? "
            "ORDER BY id DESC LIMIT 1",
            (source_path, source_mtime, kind),
        )
        return _row_to_insight(rows[0]) if rows else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def store(self, insight: InsightCreate) -> Insight:
        """Append an insight and return it with its assigned id."""
        now = _utcnow_iso()
        text = insight.text.replace("\x00", "")
        embedding = json.dumps(insight.embedding) if insight.embedding is not None else None
        new_id = self._execute(
            "INSERT INTO source_insights "
            "(insight_type, insight, source_type, source_path, source_mtime, embedding, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                insight.kind,
                text,
                insight.source_type.value,
                insight.source_path,
                insight.source_mtime,
                embedding,
                now,
                now,
            ),
        ).lastrowid
        rows = self._query(f"SELECT {_COLUMNS} FROM source_insights WHERE id = ?", (new_id,))
        if not rows:
            raise StorageUnavailableError("Stored insight could not be read back")
        return _row_to_insight(rows[0])

    def update_source_path(self, old_path: str, new_path: str) -> int:
        """Re-point insights of a renamed source. Returns the number updated."""
        return self._delete(
            "UPDATE source_insights SET source_path = ?, updated_at = ? WHERE source_path = ?",
            (new_path, _utcnow_iso(), old_path),
        )

    def delete_by_path(self, source_path: str) -> int:
        return self._delete("DELETE FROM source_insights WHERE source_path = ?", (source_path,))

    def delete_by_paths(self, source_paths: Sequence[str]) -> int:
        paths = list(dict.fromkeys(source_paths))
        if not paths:
            return 0
        return self._delete(
            f"DELETE FROM source_insights WHERE source_path IN ({_placeholders(paths)})",
            paths,
        )

    def delete_by_id(self, insight_id: int) -> int:
        return self._delete("DELETE FROM source_insights WHERE id = ?", (insight_id,))

    def delete_by_kind(self, kind: str) -> int:
        return self._delete("DELETE FROM source_insights WHERE insight_type = ?", (kind,))

    def clear_all(self) -> int:
        return self._delete("DELETE FROM source_insights")

    # ------------------------------------------------------------------
    # Search and maintenance
    # ------------------------------------------------------------------

    def similarity_search(
        self,
        vector: Sequence[float],
        min_similarity: float = 0.3,
        limit: int = 20,
        source_paths: Optional[Sequence[str]] = None,
        kinds: Optional[Sequence[str]] = None,
        source_types: Optional[Sequence[SourceType | str]] = None,
    ) -> List[ScoredInsight]:
        """Brute-force cosine search over stored embeddings.

        Returns insights with similarity strictly greater than ``min_similarity``,
        highest first. Equal scores keep store order.
        """
        clauses = ["embedding IS NOT NULL"]
        params: List[object] = []
        if source_paths is not None:
            paths = list(source_paths)
            if not paths:
                return []
            clauses.append(f"source_path IN ({_placeholders(paths)})")
            params.extend(paths)
        if kinds:
            clauses.append(f"insight_type IN ({_placeholders(kinds)})")
            params.extend(kinds)
        if source_types:
            types = [SourceType(value).value for value in source_types]
            clauses.append(f"source_type IN ({_placeholders(types)})")
            params.extend(types)

        rows = self._query(
            f"SELECT {_COLUMNS} FROM source_insights WHERE {' AND '.join(clauses)} ORDER BY id",
            params,
        )

        query = np.asarray(vector, dtype=np.float32)
        scored: List[ScoredInsight] = []
        for row in rows:
            candidate = np.asarray(json.loads(row["embedding"]), dtype=np.float32)
            if candidate.shape != query.shape:
                logger.debug("Skipping insight %s with mismatched embedding size", row["id"])
                continue
            score = cosine_similarity(query, candidate)
            if score <= min_similarity:
                continue
            insight = _row_to_insight(row)
            scored.append(
                ScoredInsight(
                    **insight.model_dump(exclude={"embedding"}),
                    similarity=score,
                )
            )

        scored.sort(key=lambda item: item.similarity, reverse=True)
        return scored[:limit]

    def search_by_text(
        self,
        text: str,
        kinds: Optional[Sequence[str]] = None,
        source_types: Optional[Sequence[SourceType | str]] = None,
        limit: int = 20,
    ) -> List[Insight]:
        """Case-insensitive substring search over insight bodies."""
        clauses = ["insight LIKE ? ESCAPE '\\'"]
        escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        params: List[object] = [f"%{escaped}%"]
        if kinds:
            clauses.append(f"insight_type IN ({_placeholders(kinds)})")
            params.extend(kinds)
        if source_types:
            types = [SourceType(value).value for value in source_types]
            clauses.append(f"source_type IN ({_placeholders(types)})")
            params.extend(types)
        params.append(limit)
        rows = self._query(
            f"SELECT {_COLUMNS} FROM source_insights WHERE {' AND '.join(clauses)} "
            "ORDER BY id DESC LIMIT ?",
            params,
        )
        return [_row_to_insight(row) for row in rows]

    def get_stats(self) -> InsightStats:
        total_rows = self._query("SELECT COUNT(*) AS total FROM source_insights")
        kind_rows = self._query(
            "SELECT insight_type, COUNT(*) AS total FROM source_insights GROUP BY insight_type"
        )
        type_rows = self._query(
            "SELECT source_type, COUNT(*) AS total FROM source_insights GROUP BY source_type"
        )
        return InsightStats(
            total=total_rows[0]["total"] if total_rows else 0,
            by_kind={row["insight_type"]: row["total"] for row in kind_rows},
            by_source_type={row["source_type"]: row["total"] for row in type_rows},
        )

    def clean_orphans(self, exists: Callable[[str], bool]) -> int:
        """Delete document insights whose source file no longer exists."""
        rows = self._query(
            "SELECT DISTINCT source_path FROM source_insights WHERE source_type = ?",
            (SourceType.DOCUMENT.value,),
        )
        orphaned = [row["source_path"] for row in rows if not exists(row["source_path"])]
        if not orphaned:
            return 0
        logger.info("Removing insights for %d missing documents", len(orphaned))
        return self.delete_by_paths(orphaned)


__all__ = ["InsightStore", "DDL_STATEMENTS", "DEFAULT_INSIGHT_DB_PATH", "cosine_similarity"]
