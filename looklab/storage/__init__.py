"""Blob storage for reference images."""

from looklab.storage.blob import (
    BlobStore,
    FileBlobStore,
    OssBlobStore,
    StoredObject,
    get_blob_store,
)

__all__ = ["BlobStore", "FileBlobStore", "OssBlobStore", "StoredObject", "get_blob_store"]
