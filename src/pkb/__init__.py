"""PKB - semantic search over a directory of markdown notes."""

from pkb.config import PKBConfig
from pkb.errors import EmbeddingError, EnrichmentError, PKBError, ScanError, StoreError
from pkb.index import PKB, ProcessResult, ProcessStatus, ReindexResult, ScanResult
from pkb.manager import PKBManager
from pkb.models import PKBStats, Position, SearchResult

__all__ = [
    "EmbeddingError",
    "EnrichmentError",
    "PKB",
    "PKBConfig",
    "PKBError",
    "PKBManager",
    "PKBStats",
    "Position",
    "ProcessResult",
    "ProcessStatus",
    "ReindexResult",
    "ScanError",
    "ScanResult",
    "SearchResult",
    "StoreError",
]
