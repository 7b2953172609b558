"""Protocol for document/image blob storage. Cleanup callers treat failures as best-effort."""
import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Where credential documents and post images live."""

    def save(self, key: str, data: bytes) -> str:
        """Store ``data`` under ``key`` and return the key."""
        ...

    def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are not an error."""
        ...


class LocalBlobStore:
    """Blob store on the local filesystem, rooted at ``root``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValueError(f"Blob key escapes store root: {key}")
        return path

    def save(self, key: str, data: bytes) -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return key

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def remove_blob_quietly(store: BlobStore | None, key: str | None) -> bool:
    """Best-effort delete. Returns False (and logs) instead of raising."""
    if store is None or not key:
        return True
    try:
        store.delete(key)
    except Exception:
        logger.warning("Blob cleanup failed for %s", key, exc_info=True)
        return False
    return True
