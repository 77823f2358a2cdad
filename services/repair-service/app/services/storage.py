import base64
import logging
import uuid
from pathlib import Path
from typing import Optional, Protocol
from app.core.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)


class FileStorage(Protocol):
    """Stores an uploaded file and returns a locator for TicketAttachment.file_url."""

    def save(self, content: bytes, filename: str, mime_type: Optional[str] = None) -> str:
        ...


class LocalDiskStorage:
    """Writes uploads under upload_dir and returns a URL below url_prefix."""

    def __init__(self, upload_dir: Path, url_prefix: str = "/uploads"):
        self.upload_dir = Path(upload_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def save(self, content: bytes, filename: str, mime_type: Optional[str] = None) -> str:
        suffix = Path(filename).suffix
        stored_name = f"{uuid.uuid4().hex}{suffix}"
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            (self.upload_dir / stored_name).write_bytes(content)
        except OSError as exc:
            logger.error("Failed to store attachment %s: %s", filename, exc)
            raise StorageError(f"Could not store attachment {filename}") from exc
        return f"{self.url_prefix}/{stored_name}"


class InlineStorage:
    """Keeps the file inside the locator as a base64 data URI (read-only filesystems)."""

    def save(self, content: bytes, filename: str, mime_type: Optional[str] = None) -> str:
        encoded = base64.b64encode(content).decode("ascii")
        return f"data:{mime_type or 'application/octet-stream'};base64,{encoded}"


def build_storage(backend: str, upload_dir: Path, url_prefix: str) -> FileStorage:
    if backend == "local":
        return LocalDiskStorage(upload_dir, url_prefix)
    if backend == "inline":
        return InlineStorage()
    raise ValidationError(f"Unknown storage backend: {backend!r}")
