from .services.blob_store import EncryptedBlobStore, StoredBlob
from .services.object_store import LocalObjectStore, ObjectStore, S3ObjectStore

__all__ = ['EncryptedBlobStore', 'StoredBlob', 'LocalObjectStore', 'ObjectStore', 'S3ObjectStore']
