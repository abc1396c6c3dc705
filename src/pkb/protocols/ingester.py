"""Protocol for document sources."""

from pathlib import Path
from typing import Protocol, runtime_checkable

from pkb.models import Document, FileMetadata


@runtime_checkable
class Ingester(Protocol):
    """Protocol for document sources.

    Listing and stat are cheap; hashing and reading touch file contents.
    Per-file failures raise ScanError so callers can skip just that file.
    Uses structural subtyping - no inheritance required.
    """

    @property
    def source_type(self) -> str:
        """Return identifier for this source type (e.g., 'folder')."""
        ...

    def can_handle(self, source: Path) -> bool:
        """Check if this ingester can process the given source."""
        ...

    def list_filenames(self, source: Path) -> list[str]:
        """Return the names of every eligible file in the source."""
        ...

    def stat(self, source: Path, filename: str) -> FileMetadata:
        ...

    def hash_file(self, source: Path, filename: str) -> str:
        ...

    def read(self, source: Path, filename: str) -> Document:
        """Read one file's content and hash."""
        ...
