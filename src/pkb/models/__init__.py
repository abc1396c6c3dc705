"""Data models for the PKB index."""

from pkb.models.document import (
    ChunkInfo,
    Document,
    FileMetadata,
    FileRecord,
    IndexLogEntry,
    PKBStats,
    Position,
    SearchResult,
    StoredChunk,
)

__all__ = [
    "ChunkInfo",
    "Document",
    "FileMetadata",
    "FileRecord",
    "IndexLogEntry",
    "PKBStats",
    "Position",
    "SearchResult",
    "StoredChunk",
]
