"""Document sources for the PKB index."""

from pkb.ingesters.folder_ingester import FolderIngester, compute_hash

__all__ = ["FolderIngester", "compute_hash"]
