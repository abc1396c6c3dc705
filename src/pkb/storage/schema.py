"""Database schema for the PKB index."""

import re
from dataclasses import dataclass

SCHEMA = """
-- Indexed files: one row per (filename, model, version)
CREATE TABLE IF NOT EXISTS files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    filename TEXT NOT NULL,
    model_name TEXT NOT NULL,
    embedding_version INTEGER NOT NULL,
    mtime_ns INTEGER NOT NULL,
    hash TEXT NOT NULL,
    UNIQUE (filename, model_name, embedding_version)
);

-- Chunks table: owned by a file, removed with it
CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_id INTEGER NOT NULL REFERENCES files(id) ON DELETE CASCADE,
    chunk_index INTEGER NOT NULL,
    text TEXT NOT NULL,
    contextualized_text TEXT NOT NULL,
    heading_context TEXT,
    content_hash TEXT NOT NULL,
    start_line INTEGER NOT NULL,
    start_col INTEGER NOT NULL,
    end_line INTEGER NOT NULL,
    end_col INTEGER NOT NULL
);

-- Metadata table: key/value, records the width of each vector table
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT
);

-- Indexes for efficient queries
CREATE INDEX IF NOT EXISTS idx_chunks_file ON chunks(file_id);
"""

# Vectors table: one per (model, version), float32 blobs of a fixed width
VECTOR_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS {table} (
    chunk_id INTEGER PRIMARY KEY REFERENCES chunks(id) ON DELETE CASCADE,
    embedding BLOB NOT NULL CHECK (length(embedding) = {width})
);
"""

FLOAT32_BYTES = 4


def vec_table_name(model_name: str, embedding_version: int) -> str:
    """Deterministic vector table name for a (model, version) pair."""
    sanitized = re.sub(r"[^a-zA-Z0-9_]", "_", model_name)
    return f"vec_{sanitized}_v{embedding_version}"


@dataclass(frozen=True)
class VectorSpace:
    """An embedding namespace: vectors are only comparable within one."""

    model_name: str
    embedding_version: int
    dimension: int

    @property
    def table(self) -> str:
        return vec_table_name(self.model_name, self.embedding_version)

    @property
    def blob_size(self) -> int:
        return self.dimension * FLOAT32_BYTES

    def create_table_sql(self) -> str:
        return VECTOR_TABLE_SCHEMA.format(table=self.table, width=self.blob_size)
