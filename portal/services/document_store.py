"""
Document Store - opaque blob storage keyed by path
"""
import logging
import os
import time
import uuid
from typing import Optional

from portal.core.config import settings

logger = logging.getLogger(__name__)


class DocumentStoreError(Exception):
    """Raised when a blob cannot be written, read or removed"""


class DocumentStore:
    """Interface the lifecycle manager talks to"""

    def put(self, path: str, data: bytes) -> None:
        raise NotImplementedError

    def get(self, path: str) -> bytes:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError


class LocalDocumentStore(DocumentStore):
    """
    Stores blobs as files under a root directory.

    Paths are relative keys such as "<vendor_id>/<bid_id>/<ms>-<name>";
    anything escaping the root is refused.
    """

    def __init__(self, root: Optional[str] = None):
        self.root = os.path.abspath(root or settings.UPLOAD_DIR)
        os.makedirs(self.root, exist_ok=True)

    def _resolve(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path))
        if os.path.commonpath([full, self.root]) != self.root:
            raise DocumentStoreError(f"Path escapes document root: {path}")
        return full

    def put(self, path: str, data: bytes) -> None:
        full = self._resolve(path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "wb") as f:
                f.write(data)
        except OSError as e:
            raise DocumentStoreError(f"Failed to store {path}: {e}") from e

    def get(self, path: str) -> bytes:
        full = self._resolve(path)
        try:
            with open(full, "rb") as f:
                return f.read()
        except OSError as e:
            raise DocumentStoreError(f"Failed to read {path}: {e}") from e

    def delete(self, path: str) -> None:
        full = self._resolve(path)
        try:
            os.remove(full)
        except FileNotFoundError:
            logger.info(f"Document {path} already absent")
        except OSError as e:
            raise DocumentStoreError(f"Failed to delete {path}: {e}") from e


def safe_filename(filename: str) -> str:
    name = os.path.basename(filename or "").strip()
    return name or "document"


def _unique_name(filename: str) -> str:
    # Same-named uploads in the same millisecond still get distinct keys
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe_filename(filename)}"


def bid_document_path(vendor_id, bid_id, filename: str) -> str:
    return f"{vendor_id}/{bid_id}/{_unique_name(filename)}"


def rfp_document_path(rfp_id, filename: str) -> str:
    return f"{rfp_id}/{_unique_name(filename)}"


_store: Optional[DocumentStore] = None


def get_document_store() -> DocumentStore:
    """FastAPI dependency returning the process-wide store"""
    global _store
    if _store is None:
        _store = LocalDocumentStore()
    return _store
