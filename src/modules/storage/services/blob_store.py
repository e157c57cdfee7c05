"""
Encrypted blob store

Document bytes are sealed with AES-256-GCM before they reach the object store.
Only ciphertext is uploaded; the IV and the authentication tag are handed back
to the caller, which persists them next to the object URL. Decrypting needs all
three back.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from modules.common.errors import ConfigurationError, IntegrityError, ValidationError
from modules.storage.services.object_store import ObjectStore

logger = logging.getLogger(__name__)

IV_SIZE = 16
TAG_SIZE = 16


@dataclass(frozen=True)
class StoredBlob:
    url: str
    iv: Optional[str] = None
    auth_tag: Optional[str] = None

    @property
    def encrypted(self) -> bool:
        return self.iv is not None and self.auth_tag is not None


class EncryptedBlobStore:

    def __init__(self, object_store: ObjectStore, key: Optional[bytes]):
        if not key:
            raise ConfigurationError("Blob store encryption key is not configured")
        if len(key) != 32:
            raise ConfigurationError("Blob store encryption key must be 32 bytes (AES-256)")
        self.object_store = object_store
        self._aesgcm = AESGCM(key)

    def store(self, name: str, plaintext: bytes, content_type: str = "application/octet-stream") -> StoredBlob:
        """Encrypts with a fresh IV and uploads the ciphertext only"""
        iv = os.urandom(IV_SIZE)
        sealed = self._aesgcm.encrypt(iv, plaintext, None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        url = self.object_store.put(name, ciphertext, content_type)
        return StoredBlob(url=url, iv=iv.hex(), auth_tag=tag.hex())

    def store_unencrypted(self, name: str, data: bytes, content_type: str = "application/octet-stream") -> StoredBlob:
        """Standalone uploads bypass encryption and carry no IV/tag"""
        url = self.object_store.put(name, data, content_type)
        return StoredBlob(url=url)

    def retrieve(self, url: str, iv: Optional[str] = None, auth_tag: Optional[str] = None) -> bytes:
        """
        Returns the plaintext of a stored object.

        Without IV/tag the object is treated as a pre-encryption upload and the
        raw bytes are returned. With them, a failed tag check raises
        IntegrityError and nothing is returned.
        """
        data = self.object_store.get(url)

        if iv is None and auth_tag is None:
            return data
        if iv is None or auth_tag is None:
            raise ValidationError("Both IV and authentication tag are required to decrypt")

        try:
            iv_bytes = bytes.fromhex(iv)
            tag_bytes = bytes.fromhex(auth_tag)
        except ValueError:
            raise IntegrityError("Stored encryption metadata is corrupt", {"url": url})

        try:
            return self._aesgcm.decrypt(iv_bytes, data + tag_bytes, None)
        except InvalidTag:
            logger.error(f"Authentication tag mismatch for {url}, object rejected as tampered")
            raise IntegrityError("Stored document failed integrity verification", {"url": url})

    def retrieve_blob(self, blob: StoredBlob) -> bytes:
        return self.retrieve(blob.url, blob.iv, blob.auth_tag)

    def delete(self, url: str) -> None:
        self.object_store.delete(url)
