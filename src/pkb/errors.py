"""Exception hierarchy for the PKB index."""


class PKBError(Exception):
    """Base class for all PKB failures."""


class ScanError(PKBError):
    """A file in the PKB directory could not be read or stat'ed."""

    def __init__(self, filename: str, message: str):
        self.filename = filename
        super().__init__(f"{filename}: {message}")


class EnrichmentError(PKBError):
    """The context generator failed for a chunk."""


class EmbeddingError(PKBError):
    """The embedding model failed or returned malformed vectors."""


class StoreError(PKBError):
    """Schema or transaction failure in the index store."""
