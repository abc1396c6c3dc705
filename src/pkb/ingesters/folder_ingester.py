"""Ingester for a flat folder of markdown files."""

import hashlib
import logging
import os
from pathlib import Path

from pkb.errors import ScanError
from pkb.models import Document, FileMetadata

logger = logging.getLogger(__name__)


def compute_hash(content: bytes) -> str:
    """Content hash used for staleness detection."""
    return hashlib.md5(content).hexdigest()


class FolderIngester:
    """Ingester for the top level of a local directory.

    Only regular files with the configured extension are considered;
    subdirectories are not scanned.
    """

    source_type = "folder"

    def __init__(self, extension: str = ".md"):
        self.extension = extension

    def can_handle(self, source: Path) -> bool:
        """Check if this is an existing directory."""
        return source.is_dir()

    def list_filenames(self, source: Path) -> list[str]:
        """List eligible filenames, sorted for a stable queue order.

        Raises:
            ScanError: if the directory itself cannot be listed
        """
        try:
            entries = os.listdir(source)
        except OSError as e:
            raise ScanError(str(source), f"cannot list directory: {e}") from e

        return sorted(name for name in entries if not self._should_skip(source, name))

    def stat(self, source: Path, filename: str) -> FileMetadata:
        try:
            st = (source / filename).stat()
        except OSError as e:
            raise ScanError(filename, f"cannot stat: {e}") from e
        return FileMetadata(filename=filename, size_bytes=st.st_size, mtime_ns=st.st_mtime_ns)

    def hash_file(self, source: Path, filename: str) -> str:
        return compute_hash(self._read_bytes(source, filename))

    def read(self, source: Path, filename: str) -> Document:
        """Read a file and decode it as UTF-8.

        The hash is taken from the same bytes that are decoded, so the
        stored hash always describes the indexed content.
        """
        metadata = self.stat(source, filename)
        raw = self._read_bytes(source, filename)
        return Document(
            metadata=metadata,
            content=raw.decode("utf-8", errors="replace"),
            hash=compute_hash(raw),
        )

    def _read_bytes(self, source: Path, filename: str) -> bytes:
        try:
            return (source / filename).read_bytes()
        except OSError as e:
            raise ScanError(filename, f"cannot read: {e}") from e

    def _should_skip(self, source: Path, name: str) -> bool:
        """Skip hidden files, other extensions and anything that is not a file."""
        if name.startswith("."):
            return True
        if not name.endswith(self.extension):
            return True
        return not (source / name).is_file()
