"""SQLite-backed storage for the PKB index."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

import numpy as np

from pkb.errors import StoreError
from pkb.models import FileRecord, Position, StoredChunk
from pkb.storage.schema import SCHEMA, VectorSpace

logger = logging.getLogger(__name__)


def vector_to_blob(vector, dimension: int) -> bytes:
    """Encode a vector as float32 bytes, checking its width."""
    arr = np.asarray(vector, dtype=np.float32).reshape(-1)
    if arr.shape[0] != dimension:
        raise StoreError(f"expected {dimension}-dim vector, got {arr.shape[0]}")
    return arr.tobytes()


def blob_to_vector(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32)


def _cosine_distances(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine distance between `query` (1-D) and each row of `matrix`."""
    denom = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    denom[denom == 0] = 1.0
    return 1.0 - (matrix @ query) / denom


class IndexStore:
    """SQLite-backed storage for files, chunks and per-model vector tables.

    Every public method runs in its own connection and transaction, so the
    store can be shared between the scanner, processor and search threads.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections.

        Commits on success, rolls back on any error. sqlite3 errors are
        re-raised as StoreError.
        """
        try:
            conn = sqlite3.connect(self.path, timeout=10)
        except sqlite3.Error as e:
            raise StoreError(f"cannot open {self.path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # Schema

    def ensure_schema(self, space: Optional[VectorSpace] = None) -> None:
        """Create tables if missing. Idempotent."""
        with self.connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)
        if space is not None:
            self.ensure_vector_table(space)

    def ensure_vector_table(self, space: VectorSpace) -> None:
        """Create the vector table for `space`, refusing a width or model change.

        Raises:
            StoreError: if the table exists for another model or dimension
        """
        key = f"vec_table:{space.table}"
        with self.connection() as conn:
            row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
            if row is not None:
                recorded = json.loads(row["value"])
                # distinct model names can sanitize to the same table name
                if recorded["model"] != space.model_name:
                    raise StoreError(
                        f"{space.table} belongs to model {recorded['model']}, "
                        f"not {space.model_name}"
                    )
                if recorded["dimension"] != space.dimension:
                    raise StoreError(
                        f"{space.table} holds {recorded['dimension']}-dim vectors, "
                        f"model {space.model_name} produces {space.dimension}"
                    )
            conn.execute(space.create_table_sql())
            conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                (key, json.dumps({"model": space.model_name, "dimension": space.dimension})),
            )

    def drop_vector_table(self, space: VectorSpace) -> None:
        """Drop an unused vector table along with the file rows of its space."""
        with self.connection() as conn:
            conn.execute(
                "DELETE FROM files WHERE model_name = ? AND embedding_version = ?",
                (space.model_name, space.embedding_version),
            )
            conn.execute(f"DROP TABLE IF EXISTS {space.table}")
            conn.execute("DELETE FROM metadata WHERE key = ?", (f"vec_table:{space.table}",))

    def set_metadata(self, key: str, value: str) -> None:
        """Store a metadata key-value pair."""
        with self.connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_metadata(self, key: str) -> Optional[str]:
        """Retrieve a metadata value by key."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT value FROM metadata WHERE key = ?", (key,)
            ).fetchone()
            return row["value"] if row else None

    # Files

    def get_file(self, space: VectorSpace, filename: str) -> Optional[FileRecord]:
        with self.connection() as conn:
            row = conn.execute(
                """SELECT * FROM files
                   WHERE filename = ? AND model_name = ? AND embedding_version = ?""",
                (filename, space.model_name, space.embedding_version),
            ).fetchone()
            return _file_record(row) if row else None

    def list_files(self, space: VectorSpace) -> list[FileRecord]:
        with self.connection() as conn:
            cursor = conn.execute(
                """SELECT * FROM files
                   WHERE model_name = ? AND embedding_version = ?
                   ORDER BY filename""",
                (space.model_name, space.embedding_version),
            )
            return [_file_record(row) for row in cursor]

    def get_file_ids(self, filename: str, space: Optional[VectorSpace] = None) -> list[int]:
        """IDs of every record for `filename`, optionally limited to one space."""
        query = "SELECT id FROM files WHERE filename = ?"
        params: tuple = (filename,)
        if space is not None:
            query += " AND model_name = ? AND embedding_version = ?"
            params += (space.model_name, space.embedding_version)
        with self.connection() as conn:
            return [row["id"] for row in conn.execute(query + " ORDER BY id", params)]

    def touch_file(self, file_id: int, mtime_ns: int) -> None:
        """Record a new mtime for a file whose content is unchanged."""
        with self.connection() as conn:
            conn.execute("UPDATE files SET mtime_ns = ? WHERE id = ?", (mtime_ns, file_id))

    def upsert_file(self, space: VectorSpace, filename: str, mtime_ns: int, hash_: str) -> int:
        """Insert a file record, or update it in place. Returns its ID."""
        with self.connection() as conn:
            return self._upsert_file(conn, space, filename, mtime_ns, hash_)

    def delete_file(self, file_id: int) -> None:
        """Delete a file; its chunks and vectors go with it."""
        with self.connection() as conn:
            conn.execute("DELETE FROM files WHERE id = ?", (file_id,))

    # Chunks

    def replace_chunks(
        self, space: VectorSpace, file_id: int, chunks: Sequence[StoredChunk]
    ) -> None:
        """Atomically swap a file's chunks and vectors for a new set."""
        with self.connection() as conn:
            self._replace_chunks(conn, space, file_id, chunks)

    def commit_file(
        self,
        space: VectorSpace,
        filename: str,
        mtime_ns: int,
        hash_: str,
        chunks: Sequence[StoredChunk],
    ) -> int:
        """Record a file's new state and its chunks in a single transaction.

        The stored hash can therefore never describe content whose chunks
        were not written.
        """
        with self.connection() as conn:
            file_id = self._upsert_file(conn, space, filename, mtime_ns, hash_)
            self._replace_chunks(conn, space, file_id, chunks)
        logger.debug(f"Committed {filename}: {len(chunks)} chunks")
        return file_id

    def get_chunks(self, space: VectorSpace, file_id: int) -> list[StoredChunk]:
        """Committed chunks of a file, with embeddings, in document order."""
        with self.connection() as conn:
            cursor = conn.execute(
                f"""SELECT c.*, v.embedding
                    FROM chunks c JOIN {space.table} v ON v.chunk_id = c.id
                    WHERE c.file_id = ?
                    ORDER BY c.chunk_index""",
                (file_id,),
            )
            return [_stored_chunk(row) for row in cursor]

    def get_all_chunks(self, space: VectorSpace) -> list[dict]:
        """Every chunk of the space, without embeddings (for inspection)."""
        with self.connection() as conn:
            cursor = conn.execute(
                """SELECT f.filename, c.chunk_index, c.text, c.contextualized_text,
                          c.heading_context, c.start_line, c.start_col,
                          c.end_line, c.end_col
                   FROM chunks c JOIN files f ON f.id = c.file_id
                   WHERE f.model_name = ? AND f.embedding_version = ?
                   ORDER BY f.filename, c.chunk_index""",
                (space.model_name, space.embedding_version),
            )
            return [dict(row) for row in cursor]

    def cleanup_orphan_vectors(self, space: VectorSpace) -> int:
        """Delete vector rows whose chunk no longer exists. Returns the count."""
        with self.connection() as conn:
            cursor = conn.execute(
                f"DELETE FROM {space.table} WHERE chunk_id NOT IN (SELECT id FROM chunks)"
            )
            return cursor.rowcount

    def count_files(self, space: VectorSpace) -> int:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM files WHERE model_name = ? AND embedding_version = ?",
                (space.model_name, space.embedding_version),
            ).fetchone()
            return row[0]

    def count_chunks(self, space: VectorSpace) -> int:
        with self.connection() as conn:
            row = conn.execute(
                """SELECT COUNT(*) FROM chunks c JOIN files f ON f.id = c.file_id
                   WHERE f.model_name = ? AND f.embedding_version = ?""",
                (space.model_name, space.embedding_version),
            ).fetchone()
            return row[0]

    def count_vectors(self, space: VectorSpace) -> int:
        with self.connection() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {space.table}").fetchone()[0]

    # Search

    def knn_search(self, space: VectorSpace, query_vector, k: int = 10) -> list[dict]:
        """Find the `k` chunks nearest to `query_vector` by cosine distance.

        Returns rows joined with their chunk and file, ascending distance.
        Both reads run in one transaction, so a concurrent replace is either
        fully visible or not at all.
        """
        query = np.asarray(query_vector, dtype=np.float32).reshape(-1)
        if query.shape[0] != space.dimension:
            raise StoreError(f"expected {space.dimension}-dim query, got {query.shape[0]}")
        if k <= 0:
            return []

        with self.connection() as conn:
            conn.execute("BEGIN")
            rows = conn.execute(f"SELECT chunk_id, embedding FROM {space.table}").fetchall()
            if not rows:
                return []

            chunk_ids = np.array([row["chunk_id"] for row in rows])
            matrix = np.stack([blob_to_vector(row["embedding"]) for row in rows])
            distances = _cosine_distances(query, matrix)
            top = np.argsort(distances, kind="stable")[:k]
            nearest = {int(chunk_ids[i]): float(distances[i]) for i in top}

            placeholders = ",".join("?" for _ in nearest)
            cursor = conn.execute(
                f"""SELECT c.id AS chunk_id, f.filename, c.text, c.contextualized_text,
                           c.heading_context, c.start_line, c.start_col,
                           c.end_line, c.end_col
                    FROM chunks c JOIN files f ON f.id = c.file_id
                    WHERE c.id IN ({placeholders})""",
                list(nearest),
            )
            results = [dict(row, distance=nearest[row["chunk_id"]]) for row in cursor]

        results.sort(key=lambda r: r["distance"])
        return results

    # Internals

    @staticmethod
    def _upsert_file(
        conn: sqlite3.Connection,
        space: VectorSpace,
        filename: str,
        mtime_ns: int,
        hash_: str,
    ) -> int:
        conn.execute(
            """INSERT INTO files (filename, model_name, embedding_version, mtime_ns, hash)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT (filename, model_name, embedding_version)
               DO UPDATE SET mtime_ns = excluded.mtime_ns, hash = excluded.hash""",
            (filename, space.model_name, space.embedding_version, mtime_ns, hash_),
        )
        row = conn.execute(
            """SELECT id FROM files
               WHERE filename = ? AND model_name = ? AND embedding_version = ?""",
            (filename, space.model_name, space.embedding_version),
        ).fetchone()
        return row["id"]

    @staticmethod
    def _replace_chunks(
        conn: sqlite3.Connection,
        space: VectorSpace,
        file_id: int,
        chunks: Sequence[StoredChunk],
    ) -> None:
        for chunk in chunks:
            if len(chunk.embedding) != space.blob_size:
                raise StoreError(
                    f"chunk {chunk.chunk_index} has a {len(chunk.embedding)}-byte "
                    f"embedding, {space.table} stores {space.blob_size}"
                )

        conn.execute(
            f"DELETE FROM {space.table} WHERE chunk_id IN (SELECT id FROM chunks WHERE file_id = ?)",
            (file_id,),
        )
        conn.execute("DELETE FROM chunks WHERE file_id = ?", (file_id,))

        for chunk in chunks:
            cursor = conn.execute(
                """INSERT INTO chunks
                   (file_id, chunk_index, text, contextualized_text, heading_context,
                    content_hash, start_line, start_col, end_line, end_col)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    file_id,
                    chunk.chunk_index,
                    chunk.text,
                    chunk.contextualized_text,
                    chunk.heading_context,
                    chunk.content_hash,
                    chunk.start.line,
                    chunk.start.col,
                    chunk.end.line,
                    chunk.end.col,
                ),
            )
            conn.execute(
                f"INSERT INTO {space.table} (chunk_id, embedding) VALUES (?, ?)",
                (cursor.lastrowid, chunk.embedding),
            )


def _file_record(row: sqlite3.Row) -> FileRecord:
    return FileRecord(
        id=row["id"],
        filename=row["filename"],
        mtime_ns=row["mtime_ns"],
        hash=row["hash"],
        model_name=row["model_name"],
        embedding_version=row["embedding_version"],
    )


def _stored_chunk(row: sqlite3.Row) -> StoredChunk:
    return StoredChunk(
        text=row["text"],
        contextualized_text=row["contextualized_text"],
        start=Position(row["start_line"], row["start_col"]),
        end=Position(row["end_line"], row["end_col"]),
        content_hash=row["content_hash"],
        embedding=bytes(row["embedding"]),
        heading_context=row["heading_context"],
        chunk_index=row["chunk_index"],
    )
