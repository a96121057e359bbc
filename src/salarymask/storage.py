"""Attachment persistence contracts and in-memory implementations.

The redaction core never talks to a database or an object store directly. It
consumes two narrow interfaces:

* :class:`BlobStore` holds the PDF bytes under a storage path;
* :class:`MetadataStore` records one :class:`AttachmentMetadata` per stored
  file, grouped by the owning record (e.g. an applicant).

:func:`store_masked_document` is the glue the upload flow uses: it names the
file ``masked_<original>``, uploads it, records its metadata and removes the
blob again when the metadata cannot be saved.
"""

from __future__ import annotations

import secrets
import time
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Dict, List, Literal, Optional, Protocol, Sequence
from uuid import uuid4

from pydantic import BaseModel, Field

from .errors import UploadPermissionError
from .logging import get_logger
from .pipeline.orchestration import masked_filename

logger = get_logger(__name__)

Visibility = Literal["all", "admin_only"]


class AttachmentMetadata(BaseModel):
    """Metadata record associated with a stored file."""

    id: Optional[str] = None
    owner_id: str
    file_name: str
    file_type: str
    file_size: str
    storage_path: str
    visibility: Visibility = "all"
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BlobNotFoundError(KeyError):
    """Raised when a storage path holds no blob."""


class MetadataNotFoundError(KeyError):
    """Raised when an attachment id is not present in the store."""


class BlobStore(Protocol):
    def upload(self, path: str, data: bytes) -> str: ...

    def download(self, path: str) -> bytes: ...

    def remove(self, paths: Sequence[str]) -> None: ...

    def signed_url(self, path: str, ttl_seconds: int = 3600) -> str: ...


class MetadataStore(Protocol):
    def create(self, metadata: AttachmentMetadata) -> str: ...

    def list_by_owner(self, owner_id: str) -> List[AttachmentMetadata]: ...

    def delete(self, attachment_id: str) -> None: ...


class InMemoryBlobStore:
    """Process-local blob store for development and tests."""

    def __init__(self, base_url: str = "memory://attachments") -> None:
        self.base_url = base_url.rstrip("/")
        self._blobs: Dict[str, bytes] = {}

    def upload(self, path: str, data: bytes) -> str:
        if path in self._blobs:
            raise FileExistsError(path)
        self._blobs[path] = bytes(data)
        return path

    def download(self, path: str) -> bytes:
        try:
            return self._blobs[path]
        except KeyError as exc:
            raise BlobNotFoundError(path) from exc

    def remove(self, paths: Sequence[str]) -> None:
        for path in paths:
            self._blobs.pop(path, None)

    def signed_url(self, path: str, ttl_seconds: int = 3600) -> str:
        if path not in self._blobs:
            raise BlobNotFoundError(path)
        expires = int(time.time()) + int(ttl_seconds)
        return f"{self.base_url}/{path}?expires={expires}&token={secrets.token_urlsafe(8)}"

    def __contains__(self, path: object) -> bool:
        return path in self._blobs


class InMemoryMetadataStore:
    """In-memory persistence layer for attachment metadata."""

    def __init__(self) -> None:
        self._items: Dict[str, AttachmentMetadata] = {}

    def create(self, metadata: AttachmentMetadata) -> str:
        attachment_id = metadata.id or uuid4().hex
        self._items[attachment_id] = metadata.model_copy(update={"id": attachment_id})
        return attachment_id

    def get(self, attachment_id: str) -> AttachmentMetadata:
        try:
            return self._items[attachment_id]
        except KeyError as exc:
            raise MetadataNotFoundError(attachment_id) from exc

    def list_by_owner(self, owner_id: str) -> List[AttachmentMetadata]:
        items = [m for m in self._items.values() if m.owner_id == owner_id]
        return sorted(items, key=lambda m: m.uploaded_at)

    def delete(self, attachment_id: str) -> None:
        if attachment_id not in self._items:
            raise MetadataNotFoundError(attachment_id)
        del self._items[attachment_id]


def format_file_size(size: int) -> str:
    """Human readable size: ``512B``, ``12KB``, ``1.5MB``."""
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{round(size / 1024)}KB"
    return f"{size / (1024 * 1024):.1f}MB"


_TYPE_BY_EXT = {
    "pdf": "pdf",
    "jpg": "image",
    "jpeg": "image",
    "png": "image",
    "gif": "image",
    "webp": "image",
    "doc": "word",
    "docx": "word",
    "xls": "excel",
    "xlsx": "excel",
    "hwp": "hwp",
}


def get_file_type(file_name: str, mime_type: Optional[str] = None) -> str:
    """Coarse file category used for display and filtering."""
    ext = PurePosixPath(file_name).suffix.lstrip(".").lower()
    mime = (mime_type or "").lower()
    if ext in _TYPE_BY_EXT:
        return _TYPE_BY_EXT[ext]
    if mime == "application/pdf":
        return "pdf"
    if mime.startswith("image/"):
        return "image"
    if "word" in mime:
        return "word"
    if "excel" in mime or "spreadsheet" in mime:
        return "excel"
    return "document"


def build_storage_path(owner_id: str, file_name: str) -> str:
    """``<owner>/<epoch ms>_<random>.<ext>``; object stores reject non-ASCII names."""
    ext = PurePosixPath(file_name).suffix.lstrip(".").lower() or "bin"
    return f"{owner_id}/{int(time.time() * 1000)}_{secrets.token_hex(3)}.{ext}"


def store_masked_document(
    blobs: BlobStore,
    metadata: MetadataStore,
    *,
    owner_id: str,
    original_name: str,
    data: bytes,
    privileged: bool,
    visibility: Visibility = "all",
    masked: bool = True,
) -> AttachmentMetadata:
    """Upload a (masked) PDF and record its metadata.

    Parameters
    ----------
    owner_id:
        Record the attachment belongs to.
    original_name:
        Name of the file the operator supplied.
    data:
        Bytes to store, usually a :class:`~salarymask.types.RedactionResult`'s
        ``output_bytes``.
    privileged:
        Whether the caller may upload attachments at all.
    masked:
        Store under ``masked_<original_name>`` when True.

    Raises
    ------
    UploadPermissionError
        If ``privileged`` is False.
    """
    if not privileged:
        raise UploadPermissionError("Only administrators can upload attachments")
    file_name = masked_filename(original_name) if masked else original_name
    path = blobs.upload(build_storage_path(owner_id, file_name), data)
    record = AttachmentMetadata(
        owner_id=owner_id,
        file_name=file_name,
        file_type=get_file_type(file_name, "application/pdf"),
        file_size=format_file_size(len(data)),
        storage_path=path,
        visibility=visibility,
    )
    try:
        attachment_id = metadata.create(record)
    except Exception:
        blobs.remove([path])
        logger.warning("Metadata write failed; uploaded blob removed", extra={"path": path})
        raise
    logger.info(
        "Attachment stored",
        extra={"owner_id": owner_id, "path": path, "visibility": visibility},
    )
    return record.model_copy(update={"id": attachment_id})


def delete_attachment(blobs: BlobStore, metadata: MetadataStore, attachment: AttachmentMetadata) -> None:
    """Remove an attachment's blob and its metadata record."""
    blobs.remove([attachment.storage_path])
    if attachment.id is not None:
        metadata.delete(attachment.id)


__all__ = [
    "AttachmentMetadata",
    "BlobStore",
    "MetadataStore",
    "InMemoryBlobStore",
    "InMemoryMetadataStore",
    "BlobNotFoundError",
    "MetadataNotFoundError",
    "format_file_size",
    "get_file_type",
    "build_storage_path",
    "store_masked_document",
    "delete_attachment",
]
