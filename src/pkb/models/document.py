"""Core data models for documents, chunks and index state."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True, order=True)
class Position:
    """A 1-based (line, col) location in a document."""

    line: int
    col: int


@dataclass(frozen=True)
class FileMetadata:
    """Filesystem state of one document in the PKB directory."""

    filename: str
    size_bytes: int
    mtime_ns: int


@dataclass
class Document:
    """A document read from the PKB directory."""

    metadata: FileMetadata
    content: str
    hash: str


@dataclass
class ChunkInfo:
    """A chunk produced by the chunker, addressed by source position.

    `end` is inclusive: it points at the last character of `text`.
    """

    text: str
    start: Position
    end: Position
    heading_context: Optional[str] = None


@dataclass
class FileRecord:
    """Stored metadata for an indexed file."""

    id: int
    filename: str
    mtime_ns: int
    hash: str
    model_name: str
    embedding_version: int


@dataclass
class StoredChunk:
    """A chunk ready to be written (or read back) with its embedding."""

    text: str
    contextualized_text: str
    start: Position
    end: Position
    content_hash: str
    embedding: bytes
    heading_context: Optional[str] = None
    chunk_index: int = 0


@dataclass
class SearchResult:
    """A ranked search hit."""

    file: str
    text: str
    contextualized_text: str
    start: Position
    end: Position
    score: float
    heading_context: Optional[str] = None


@dataclass(frozen=True)
class IndexLogEntry:
    """One entry of the rolling activity log."""

    file: str
    chunk_count: int
    timestamp: datetime


@dataclass
class PKBStats:
    """Snapshot of index size and processor activity."""

    total_files: int
    total_chunks: int
    queue_depth: int
    recent_activity: list[IndexLogEntry] = field(default_factory=list)
