"""
Document Store - lease document blobs
put(bytes) → path, remove(path), public_url(path). The contract row keeps the
path as a weak reference; the bytes belong to the store.

HttpDocumentStore speaks the bucket/object REST dialect used by Supabase
Storage and compatible services:

    POST   {base}/object/{bucket}/{path}          upload
    DELETE {base}/object/{bucket}                 body {"prefixes": [path]}
    GET    {base}/object/public/{bucket}/{path}   public read
"""

import logging
import mimetypes
from abc import ABC, abstractmethod
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """Blob storage for lease documents."""

    @abstractmethod
    def put(self, content: bytes, suggested_name: str) -> str:
        """Store bytes and return the path they can be found under."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Delete the blob at path."""

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Stable public reference for path."""


# =============================================================================
# HTTP (storage REST API)
# =============================================================================

class HttpDocumentStore(DocumentStore):
    """
    Document store backed by a storage REST API.

    Args:
        base_url: Storage API root, e.g. https://<project>.supabase.co/storage/v1
        api_key: Service key sent as bearer token
        bucket: Bucket holding lease documents
        timeout: Read timeout in seconds (connect timeout is fixed at 10s)
    """

    def __init__(self, base_url: str, api_key: str, bucket: str = 'contract-pdfs', timeout: float = 30.0):
        if not base_url:
            raise ValueError("DOCUMENT_STORE_URL not set in environment")
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.bucket = bucket
        self.timeout = (10, timeout)

    def _headers(self, content_type: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def put(self, content: bytes, suggested_name: str) -> str:
        path = suggested_name.lstrip('/')
        content_type = mimetypes.guess_type(path)[0] or 'application/octet-stream'
        url = f"{self.base_url}/object/{self.bucket}/{path}"

        logger.debug(f"Uploading {len(content)} bytes to {self.bucket}/{path}")
        headers = self._headers(content_type)
        headers["x-upsert"] = "false"
        headers["cache-control"] = "max-age=3600"
        response = requests.post(url, data=content, headers=headers, timeout=self.timeout, verify=True)
        response.raise_for_status()

        logger.info(f"Uploaded document {self.bucket}/{path} ({len(content)} bytes)")
        return path

    def remove(self, path: str) -> None:
        url = f"{self.base_url}/object/{self.bucket}"
        response = requests.delete(
            url, json={"prefixes": [path]}, headers=self._headers("application/json"),
            timeout=self.timeout, verify=True,
        )
        response.raise_for_status()
        logger.info(f"Removed document {self.bucket}/{path}")

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/object/public/{self.bucket}/{path.lstrip('/')}"


# =============================================================================
# IN-MEMORY
# =============================================================================

class InMemoryDocumentStore(DocumentStore):
    """Document store kept in a dict; for tests and demo mode."""

    def __init__(self, base_url: str = 'memory://documents'):
        self.base_url = base_url.rstrip('/')
        self.blobs: Dict[str, bytes] = {}

    def put(self, content: bytes, suggested_name: str) -> str:
        path = suggested_name.lstrip('/')
        if path in self.blobs:
            stem, dot, ext = path.rpartition('.')
            if not dot:
                stem, ext = path, ''
            n = 1
            while f"{stem}-{n}{dot}{ext}" in self.blobs:
                n += 1
            path = f"{stem}-{n}{dot}{ext}"
        self.blobs[path] = bytes(content)
        logger.debug(f"Stored document {path} ({len(content)} bytes)")
        return path

    def remove(self, path: str) -> None:
        if self.blobs.pop(path, None) is None:
            raise FileNotFoundError(path)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"
