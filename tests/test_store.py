"""Tests for the SQLite index store."""

import sqlite3
from pathlib import Path

import numpy as np
import pytest

from pkb.errors import StoreError
from pkb.models import Position, StoredChunk
from pkb.storage import IndexStore, VectorSpace, blob_to_vector, vec_table_name, vector_to_blob


def make_chunk(text: str, vector, index: int = 0, dimension: int = 3) -> StoredChunk:
    return StoredChunk(
        text=text,
        contextualized_text=text,
        start=Position(index + 1, 1),
        end=Position(index + 1, len(text)),
        content_hash=f"hash-{text}",
        embedding=vector_to_blob(vector, dimension),
        chunk_index=index,
    )


class TestIndexStore:
    """Test suite for IndexStore."""

    @pytest.fixture
    def space(self) -> VectorSpace:
        return VectorSpace(model_name="test-model", embedding_version=1, dimension=3)

    @pytest.fixture
    def store(self, tmp_path: Path, space: VectorSpace) -> IndexStore:
        store = IndexStore(tmp_path / "pkb.db")
        store.ensure_schema(space)
        return store

    def test_ensure_schema_idempotent(self, store: IndexStore, space: VectorSpace):
        """Test that creating the schema twice is harmless."""
        store.ensure_schema(space)
        store.ensure_schema(space)

        with store.connection() as conn:
            tables = {
                row["name"]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
        assert {"files", "chunks", "metadata", space.table} <= tables

    def test_vector_table_name(self):
        assert (
            vec_table_name("sentence-transformers/all-MiniLM-L6-v2", 2)
            == "vec_sentence_transformers_all_MiniLM_L6_v2_v2"
        )

    def test_dimension_change_rejected(self, store: IndexStore, space: VectorSpace):
        """Test that a vector table cannot be reused with another width."""
        wider = VectorSpace(space.model_name, space.embedding_version, dimension=5)

        with pytest.raises(StoreError):
            store.ensure_vector_table(wider)

    def test_model_name_collision_rejected(self, tmp_path: Path):
        """Test that two models sharing a sanitized table name cannot share vectors."""
        store = IndexStore(tmp_path / "collide.db")
        slashed = VectorSpace(model_name="a/b", embedding_version=1, dimension=3)
        underscored = VectorSpace(model_name="a_b", embedding_version=1, dimension=3)
        assert slashed.table == underscored.table
        store.ensure_schema(slashed)

        with pytest.raises(StoreError):
            store.ensure_vector_table(underscored)
        store.ensure_vector_table(slashed)

    def test_upsert_file_updates_in_place(self, store: IndexStore, space: VectorSpace):
        file_id = store.upsert_file(space, "a.md", 1, "h1")
        same_id = store.upsert_file(space, "a.md", 2, "h2")

        assert same_id == file_id
        record = store.get_file(space, "a.md")
        assert record.mtime_ns == 2
        assert record.hash == "h2"
        assert store.count_files(space) == 1

    def test_spaces_are_separate(self, store: IndexStore, space: VectorSpace):
        """Test that a new embedding version gets its own file and vector rows."""
        v2 = VectorSpace(space.model_name, 2, space.dimension)
        store.ensure_vector_table(v2)
        store.commit_file(space, "a.md", 1, "h", [make_chunk("one", [1, 0, 0])])
        store.commit_file(v2, "a.md", 1, "h", [make_chunk("one", [0, 1, 0])])

        assert len(store.get_file_ids("a.md")) == 2
        assert len(store.get_file_ids("a.md", v2)) == 1
        assert store.count_vectors(space) == 1
        assert store.count_vectors(v2) == 1
        assert v2.table != space.table

    def test_commit_replaces_chunks(self, store: IndexStore, space: VectorSpace):
        """Test that a new generation fully replaces the old one."""
        store.commit_file(
            space, "a.md", 1, "h1",
            [make_chunk("one", [1, 0, 0]), make_chunk("two", [0, 1, 0], 1)],
        )
        file_id = store.commit_file(space, "a.md", 2, "h2", [make_chunk("three", [0, 0, 1])])

        chunks = store.get_chunks(space, file_id)
        assert [c.text for c in chunks] == ["three"]
        assert store.count_chunks(space) == 1
        assert store.count_vectors(space) == 1
        np.testing.assert_allclose(blob_to_vector(chunks[0].embedding), [0, 0, 1])

    def test_bad_vector_rolls_back(self, store: IndexStore, space: VectorSpace):
        """Test that a failed commit leaves the previous generation visible."""
        store.commit_file(space, "a.md", 1, "h1", [make_chunk("one", [1, 0, 0])])
        bad = make_chunk("broken", [1, 0, 0, 0], dimension=4)

        with pytest.raises(StoreError):
            store.commit_file(space, "a.md", 2, "h2", [make_chunk("two", [0, 1, 0]), bad])

        record = store.get_file(space, "a.md")
        assert record.hash == "h1"
        assert [c.text for c in store.get_chunks(space, record.id)] == ["one"]
        assert store.count_vectors(space) == 1

    def test_delete_cascades(self, store: IndexStore, space: VectorSpace):
        """Test that deleting a file removes its chunks and vectors."""
        file_id = store.commit_file(
            space, "a.md", 1, "h",
            [make_chunk("one", [1, 0, 0]), make_chunk("two", [0, 1, 0], 1)],
        )
        store.commit_file(space, "b.md", 1, "h", [make_chunk("three", [0, 0, 1])])

        store.delete_file(file_id)

        assert store.get_file(space, "a.md") is None
        assert store.count_files(space) == 1
        assert store.count_chunks(space) == 1
        assert store.count_vectors(space) == 1

    def test_knn_search_order(self, store: IndexStore, space: VectorSpace):
        """Test that results come back nearest first."""
        store.commit_file(
            space, "a.md", 1, "h",
            [
                make_chunk("x-axis", [1, 0, 0]),
                make_chunk("diagonal", [1, 1, 0], 1),
                make_chunk("z-axis", [0, 0, 1], 2),
            ],
        )

        rows = store.knn_search(space, [1, 0.1, 0], k=2)

        assert [r["text"] for r in rows] == ["x-axis", "diagonal"]
        assert rows[0]["distance"] <= rows[1]["distance"]
        assert rows[0]["filename"] == "a.md"
        assert (rows[0]["start_line"], rows[0]["start_col"]) == (1, 1)

    def test_knn_search_empty(self, store: IndexStore, space: VectorSpace):
        assert store.knn_search(space, [1, 0, 0], k=5) == []

    def test_knn_search_wrong_dimension(self, store: IndexStore, space: VectorSpace):
        with pytest.raises(StoreError):
            store.knn_search(space, [1, 0], k=5)

    def test_cleanup_orphan_vectors(self, store: IndexStore, space: VectorSpace):
        """Test removal of vector rows left behind without a chunk."""
        store.commit_file(space, "a.md", 1, "h", [make_chunk("one", [1, 0, 0])])
        # foreign keys are off on a plain connection
        conn = sqlite3.connect(store.path)
        conn.execute(
            f"INSERT INTO {space.table} (chunk_id, embedding) VALUES (?, ?)",
            (9999, vector_to_blob([0, 1, 0], 3)),
        )
        conn.commit()
        conn.close()

        assert store.count_vectors(space) == 2
        assert store.cleanup_orphan_vectors(space) == 1
        assert store.count_vectors(space) == 1

    def test_touch_file(self, store: IndexStore, space: VectorSpace):
        file_id = store.upsert_file(space, "a.md", 1, "h")
        store.touch_file(file_id, 42)

        assert store.get_file(space, "a.md").mtime_ns == 42

    def test_metadata(self, store: IndexStore):
        store.set_metadata("created_at", "today")

        assert store.get_metadata("created_at") == "today"
        assert store.get_metadata("missing") is None

    def test_get_all_chunks(self, store: IndexStore, space: VectorSpace):
        store.commit_file(space, "b.md", 1, "h", [make_chunk("bee", [0, 1, 0])])
        store.commit_file(space, "a.md", 1, "h", [make_chunk("ay", [1, 0, 0])])

        rows = store.get_all_chunks(space)
        assert [(r["filename"], r["text"]) for r in rows] == [("a.md", "ay"), ("b.md", "bee")]

    def test_drop_vector_table(self, store: IndexStore, space: VectorSpace):
        store.commit_file(space, "a.md", 1, "h", [make_chunk("one", [1, 0, 0])])
        store.drop_vector_table(space)

        assert store.count_files(space) == 0
        assert store.count_chunks(space) == 0


def test_vector_to_blob_checks_width():
    with pytest.raises(StoreError):
        vector_to_blob([1.0, 2.0], 3)
    assert len(vector_to_blob([1.0, 2.0, 3.0], 3)) == 12
