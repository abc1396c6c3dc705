"""Protocol for text chunking strategies."""

from typing import Protocol, runtime_checkable

from pkb.models import ChunkInfo


@runtime_checkable
class ChunkingStrategy(Protocol):
    """Protocol for text chunking strategies.

    Implementations must be pure: the same text always yields the same
    chunks, and each chunk's start/end slice back to its text.
    """

    def chunk(self, text: str) -> list[ChunkInfo]:
        """Split text into ordered, position-addressed chunks."""
        ...
