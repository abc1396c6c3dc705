"""The PKB index: staleness scan, queue processing and search."""

import hashlib
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

import numpy as np

from pkb.chunkers import MarkdownChunker
from pkb.config import PKBConfig
from pkb.errors import EmbeddingError, EnrichmentError, PKBError, ScanError
from pkb.ingesters import FolderIngester
from pkb.models import (
    ChunkInfo,
    FileRecord,
    IndexLogEntry,
    PKBStats,
    Position,
    SearchResult,
    StoredChunk,
)
from pkb.protocols import ChunkingStrategy, ContextGenerator, EmbeddingModel, Ingester
from pkb.storage import IndexStore, VectorSpace, vector_to_blob
from pkb.sync.queue import IndexQueue, OpKind, QueueOp

logger = logging.getLogger(__name__)


class ProcessStatus(Enum):
    IDLE = "idle"
    INDEXED = "indexed"
    DELETED = "deleted"
    FAILED = "failed"


@dataclass
class ProcessResult:
    status: ProcessStatus
    filename: Optional[str] = None
    chunk_count: int = 0
    embedded_count: int = 0
    error: Optional[Exception] = None


@dataclass
class ScanResult:
    queued: list[QueueOp] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass
class ReindexResult:
    scan: ScanResult
    processed: list[ProcessResult] = field(default_factory=list)


def chunk_content_hash(chunk: ChunkInfo) -> str:
    """Identity of a chunk's content, independent of where it sits."""
    key = f"{chunk.heading_context or ''}\n{chunk.text}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class PKB:
    """A semantic index over one flat directory of markdown files.

    Owns its own queue and activity log, so several indexes can live in
    one process. The scanner only reads file metadata and fills the queue;
    `process_next_in_queue` runs at most one index/delete at a time.
    """

    def __init__(
        self,
        config: PKBConfig,
        embedding_model: EmbeddingModel,
        context_generator: Optional[ContextGenerator] = None,
        chunker: Optional[ChunkingStrategy] = None,
        ingester: Optional[Ingester] = None,
    ):
        self.config = config
        self.embedding_model = embedding_model
        self.context_generator = context_generator
        self.chunker = chunker or MarkdownChunker(config.max_chunk_size, config.chunk_overlap)
        self.ingester = ingester or FolderIngester(config.extension)
        self.store = IndexStore(config.db_path)
        self.queue = IndexQueue()
        self.index_log: deque[IndexLogEntry] = deque(maxlen=config.max_log_entries)
        self._space: Optional[VectorSpace] = None
        self._schema_ready = False
        self._schema_lock = threading.Lock()
        self._processing_lock = threading.RLock()

    @property
    def root(self):
        return self.config.path

    @property
    def space(self) -> VectorSpace:
        """Vector namespace of the configured model and embedding version."""
        if self._space is None:
            self._space = VectorSpace(
                model_name=self.embedding_model.model_name,
                embedding_version=self.config.embedding_version,
                dimension=self.embedding_model.dimension,
            )
        return self._space

    def ensure_schema(self) -> None:
        """Create the database and this model's vector table on first use."""
        with self._schema_lock:
            if self._schema_ready:
                return
            self.root.mkdir(parents=True, exist_ok=True)
            self.store.ensure_schema(self.space)
            self._schema_ready = True

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan_for_changes(self) -> ScanResult:
        """Compare the directory with stored records and queue the differences.

        Raises:
            ScanError: if the directory itself cannot be listed
        """
        self.ensure_schema()
        result = ScanResult()
        stored = {record.filename: record for record in self.store.list_files(self.space)}
        filenames = self.ingester.list_filenames(self.root)

        for filename in filenames:
            try:
                op = self._classify(filename, stored.get(filename))
            except ScanError as e:
                logger.warning(f"Skipping {filename}: {e}")
                result.failed.append(filename)
                continue
            if op is None:
                result.skipped.append(filename)
            else:
                logger.info(f"Queued {op.kind.value}: {filename}")
                self.queue.push(op)
                result.queued.append(op)

        for filename in sorted(stored.keys() - set(filenames)):
            op = QueueOp(OpKind.DELETE, filename)
            logger.info(f"Queued {op.kind.value}: {filename}")
            self.queue.push(op)
            result.queued.append(op)

        logger.debug(
            f"Scanned {len(filenames)} files: {len(result.queued)} queued, "
            f"{len(result.skipped)} unchanged, {len(result.failed)} unreadable"
        )
        return result

    def _classify(self, filename: str, record: Optional[FileRecord]) -> Optional[QueueOp]:
        """Return the operation `filename` needs, or None if it is up to date."""
        metadata = self.ingester.stat(self.root, filename)
        if record is None:
            return QueueOp(OpKind.INDEX, filename)

        if (
            record.mtime_ns == metadata.mtime_ns
            and record.embedding_version == self.config.embedding_version
        ):
            return None

        current_hash = self.ingester.hash_file(self.root, filename)
        if record.hash == current_hash and record.embedding_version == self.config.embedding_version:
            self.store.touch_file(record.id, metadata.mtime_ns)
            return None

        return QueueOp(OpKind.INDEX, filename)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_next_in_queue(self) -> ProcessResult:
        """Run the oldest queued operation.

        Failures are contained to the file: its committed state is left as
        is, and the next scan queues it again.
        """
        with self._processing_lock:
            op = self.queue.pop()
            if op is None:
                return ProcessResult(ProcessStatus.IDLE)

            try:
                if op.kind is OpKind.DELETE:
                    self.delete_file(op.filename)
                    result = ProcessResult(ProcessStatus.DELETED, op.filename)
                else:
                    result = self._index(op.filename)
            except PKBError as e:
                logger.exception(f"Failed to {op.kind.value} {op.filename}: {e}")
                return ProcessResult(ProcessStatus.FAILED, op.filename, error=e)
            except Exception as e:
                logger.exception(f"Unexpected error during {op.kind.value} of {op.filename}")
                return ProcessResult(ProcessStatus.FAILED, op.filename, error=e)

            self._log_activity(result.filename, result.chunk_count)
            return result

    def reindex(self) -> ReindexResult:
        """Run one full scan and drain the queue."""
        result = ReindexResult(scan=self.scan_for_changes())
        while len(self.queue) > 0:
            processed = self.process_next_in_queue()
            if processed.status is not ProcessStatus.IDLE:
                result.processed.append(processed)
        return result

    def index_file(self, filename: str) -> int:
        """Chunk, enrich, embed and store one file. Returns its chunk count."""
        with self._processing_lock:
            return self._index(filename).chunk_count

    def reindex_file(self, filename: str) -> int:
        """Drop every stored record of `filename` and index it from scratch."""
        self.ensure_schema()
        with self._processing_lock:
            for file_id in self.store.get_file_ids(filename, self.space):
                self.store.delete_file(file_id)
            return self._index(filename).chunk_count

    def delete_file(self, filename: str) -> None:
        """Remove a file with its chunks and vectors."""
        self.ensure_schema()
        with self._processing_lock:
            for file_id in self.store.get_file_ids(filename, self.space):
                self.store.delete_file(file_id)
        logger.info(f"Removed {filename} from index")

    def _index(self, filename: str) -> ProcessResult:
        self.ensure_schema()
        document = self.ingester.read(self.root, filename)
        chunks = self.chunker.chunk(document.content)
        previous = self._previous_chunks(filename)

        stored: list[StoredChunk] = []
        to_embed: list[int] = []
        for i, chunk in enumerate(chunks):
            content_hash = chunk_content_hash(chunk)
            reused = previous.get(content_hash)
            stored.append(
                StoredChunk(
                    text=chunk.text,
                    contextualized_text=(
                        reused.contextualized_text
                        if reused
                        else self._contextualize(document.content, chunk)
                    ),
                    start=chunk.start,
                    end=chunk.end,
                    content_hash=content_hash,
                    embedding=reused.embedding if reused else b"",
                    heading_context=chunk.heading_context,
                    chunk_index=i,
                )
            )
            if reused is None:
                to_embed.append(i)

        if to_embed:
            vectors = self._embed([stored[i].contextualized_text for i in to_embed])
            for i, vector in zip(to_embed, vectors):
                stored[i].embedding = vector_to_blob(vector, self.space.dimension)

        self.store.commit_file(
            self.space, filename, document.metadata.mtime_ns, document.hash, stored
        )
        logger.info(
            f"Indexed {filename}: {len(stored)} chunks, {len(to_embed)} embedded "
            f"({len(self.queue)} remaining)"
        )
        return ProcessResult(
            ProcessStatus.INDEXED,
            filename,
            chunk_count=len(stored),
            embedded_count=len(to_embed),
        )

    def _previous_chunks(self, filename: str) -> dict[str, StoredChunk]:
        """Committed chunks of `filename` by content hash, when reuse is on."""
        if not self.config.reuse_unchanged_chunks:
            return {}
        record = self.store.get_file(self.space, filename)
        if record is None:
            return {}
        previous: dict[str, StoredChunk] = {}
        for chunk in self.store.get_chunks(self.space, record.id):
            previous.setdefault(chunk.content_hash, chunk)
        return previous

    def _contextualize(self, document: str, chunk: ChunkInfo) -> str:
        """Generated context, heading context and chunk text, blank-line separated."""
        parts = []
        if self.context_generator is not None:
            try:
                context = self.context_generator.generate_context(document, chunk.text).strip()
            except Exception as e:
                raise EnrichmentError(f"context generation failed: {e}") from e
            parts.append(context)
        parts.append(chunk.heading_context)
        parts.append(chunk.text)
        return "\n\n".join(part for part in parts if part)

    def _embed(self, texts: list[str]) -> np.ndarray:
        try:
            vectors = np.asarray(self.embedding_model.embed_chunks(texts), dtype=np.float32)
        except Exception as e:
            raise EmbeddingError(f"{self.space.model_name} failed: {e}") from e

        expected = (len(texts), self.space.dimension)
        if vectors.shape != expected:
            raise EmbeddingError(
                f"{self.space.model_name} returned shape {vectors.shape}, expected {expected}"
            )
        return vectors

    def _log_activity(self, filename: str, chunk_count: int) -> None:
        self.index_log.append(
            IndexLogEntry(file=filename, chunk_count=chunk_count, timestamp=datetime.now())
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def search(self, query: str, top_k: int = 10) -> list[SearchResult]:
        """Nearest chunks to `query`, best first. Empty index gives []."""
        self.ensure_schema()
        if self.store.count_vectors(self.space) == 0:
            return []

        try:
            query_vector = self.embedding_model.embed_query(query)
        except Exception as e:
            raise EmbeddingError(f"{self.space.model_name} failed: {e}") from e

        rows = self.store.knn_search(self.space, query_vector, top_k)
        return [
            SearchResult(
                file=row["filename"],
                text=row["text"],
                contextualized_text=row["contextualized_text"],
                start=Position(row["start_line"], row["start_col"]),
                end=Position(row["end_line"], row["end_col"]),
                score=1.0 - row["distance"],
                heading_context=row["heading_context"],
            )
            for row in rows
        ]

    def get_stats(self) -> PKBStats:
        self.ensure_schema()
        return PKBStats(
            total_files=self.store.count_files(self.space),
            total_chunks=self.store.count_chunks(self.space),
            queue_depth=len(self.queue),
            recent_activity=list(self.index_log),
        )

    def get_queue_size(self) -> int:
        return len(self.queue)

    def get_queued_files(self) -> list[str]:
        return self.queue.filenames()

    def get_all_chunks(self) -> list[dict]:
        self.ensure_schema()
        return self.store.get_all_chunks(self.space)

    def cleanup_orphan_vectors(self) -> int:
        self.ensure_schema()
        return self.store.cleanup_orphan_vectors(self.space)
