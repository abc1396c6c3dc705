"""Protocol definitions for extensible components."""

from pkb.protocols.chunker import ChunkingStrategy
from pkb.protocols.context import ContextGenerator
from pkb.protocols.embedder import EmbeddingModel
from pkb.protocols.ingester import Ingester

__all__ = ["ChunkingStrategy", "ContextGenerator", "EmbeddingModel", "Ingester"]
