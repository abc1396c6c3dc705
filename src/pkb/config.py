"""Configuration for a PKB index."""

from dataclasses import dataclass, replace
from pathlib import Path

# Bump whenever the embedded representation changes incompatibly.
# Vector tables are namespaced by this, so old tables are left untouched.
PKB_EMBEDDING_VERSION = 1

DEFAULT_PKB_PATH = Path.home() / "pkb"


@dataclass(frozen=True)
class PKBConfig:
    """Settings for one indexed directory."""

    path: Path = DEFAULT_PKB_PATH
    extension: str = ".md"
    max_chunk_size: int = 2000  # ~500 tokens
    chunk_overlap: int = 200
    scan_interval: float = 5.0
    process_interval: float = 0.1
    max_log_entries: int = 20
    reuse_unchanged_chunks: bool = True
    db_filename: str = "pkb.db"
    embedding_version: int = PKB_EMBEDDING_VERSION

    @classmethod
    def from_path(cls, path: Path | str, **overrides) -> "PKBConfig":
        """Build a config for `path`, expanding ~ and resolving it."""
        resolved = Path(path).expanduser().resolve()
        return cls(path=resolved, **overrides)

    @property
    def db_path(self) -> Path:
        return self.path / self.db_filename

    def with_overrides(self, **changes) -> "PKBConfig":
        return replace(self, **changes)
