"""SQLite storage for the PKB index."""

from pkb.storage.schema import VectorSpace, vec_table_name
from pkb.storage.store import IndexStore, blob_to_vector, vector_to_blob

__all__ = ["IndexStore", "VectorSpace", "blob_to_vector", "vec_table_name", "vector_to_blob"]
