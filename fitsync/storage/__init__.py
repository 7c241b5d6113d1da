"""Local persistence: the entity store and the durable blob store."""

from .blob_store import SQLiteBlobStore
from .local_store import LocalStore

__all__ = ["LocalStore", "SQLiteBlobStore"]
