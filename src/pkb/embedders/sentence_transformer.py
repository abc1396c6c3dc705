"""SentenceTransformer-based embedding model."""

import numpy as np
from sentence_transformers import SentenceTransformer


class SentenceTransformerEmbedder:
    """Embedding model using the sentence-transformers library.

    Uses all-MiniLM-L6-v2 by default - a fast, lightweight model
    that produces good quality embeddings for semantic search.
    Embeddings are L2-normalized, so cosine distance is well defined.
    """

    DEFAULT_MODEL = "all-MiniLM-L6-v2"

    def __init__(self, model_name: str | None = None):
        """Initialize the embedder.

        Args:
            model_name: Name of the sentence-transformers model to use.
                       Defaults to all-MiniLM-L6-v2.
        """
        self._model_name = model_name or self.DEFAULT_MODEL
        self._model: SentenceTransformer | None = None

    @property
    def model(self) -> SentenceTransformer:
        """Lazy-load the model on first access."""
        if self._model is None:
            self._model = SentenceTransformer(self._model_name)
        return self._model

    @property
    def dimension(self) -> int:
        """Return the embedding dimension."""
        return self.model.get_sentence_embedding_dimension()

    @property
    def model_name(self) -> str:
        """Return identifier for the model used."""
        return self._model_name

    def embed_chunk(self, chunk: str) -> np.ndarray:
        return self.embed_chunks([chunk])[0]

    def embed_query(self, query: str) -> np.ndarray:
        return self._encode([query])[0]

    def embed_chunks(self, chunks: list[str]) -> np.ndarray:
        """Generate embeddings for a batch of chunks.

        Args:
            chunks: List of text strings to embed

        Returns:
            numpy array of shape (len(chunks), dimension)
        """
        if not chunks:
            return np.empty((0, self.dimension), dtype=np.float32)
        return self._encode(chunks)

    def _encode(self, texts: list[str]) -> np.ndarray:
        return self.model.encode(
            texts,
            convert_to_numpy=True,
            normalize_embeddings=True,  # For cosine similarity
        )
