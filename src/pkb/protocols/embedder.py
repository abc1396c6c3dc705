"""Protocol for embedding model providers."""

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class EmbeddingModel(Protocol):
    """Protocol for embedding model providers.

    Allows swapping between local models (sentence-transformers),
    API-based models, or test doubles. `model_name` and `dimension` must be
    stable: together with the embedding version they name the vector table.
    """

    @property
    def dimension(self) -> int:
        """Return the embedding dimension."""
        ...

    @property
    def model_name(self) -> str:
        """Return identifier for the model used."""
        ...

    def embed_chunk(self, chunk: str) -> np.ndarray:
        """Embed one document chunk. Returns shape (dimension,)."""
        ...

    def embed_query(self, query: str) -> np.ndarray:
        """Embed a search query. Returns shape (dimension,)."""
        ...

    def embed_chunks(self, chunks: list[str]) -> np.ndarray:
        """Embed a batch of chunks. Returns shape (len(chunks), dimension)."""
        ...
