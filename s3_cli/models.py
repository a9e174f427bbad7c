from __future__ import annotations
"""Data models shared by the listing, filtering and upload pipelines."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
import enum
from typing import Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def canonical_header_key(name: str) -> str:
    """``x-amz-meta-owner`` -> ``X-Amz-Meta-Owner``."""

    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))


@dataclass(frozen=True)
class ObjectRecord:
    """A single listed object, prefix or bucket.

    A record with an empty ``key`` is the terminal error marker of a listing
    stream, never a real object.
    """

    key: str
    size: int = 0
    last_modified: datetime = field(default_factory=utc_now)
    etag: str = ""
    storage_class: Optional[str] = None
    version_id: Optional[str] = None
    version_ordinal: Optional[int] = None
    version_index: Optional[int] = None
    is_delete_marker: Optional[bool] = None
    metadata: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    is_directory: bool = False
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.key == ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "error" if self.is_error else "success",
            "type": "folder" if self.is_directory else "file",
            "lastModified": self.last_modified.isoformat(),
            "size": self.size,
            "key": self.key,
            "etag": self.etag,
            "url": None,
            "versionId": self.version_id,
            "versionOrdinal": self.version_ordinal,
            "versionIndex": self.version_index,
            "isDeleteMarker": self.is_delete_marker,
            "storageClass": self.storage_class,
            "metadata": dict(self.metadata),
            "tags": dict(self.tags),
        }


@dataclass
class ListingRequest:
    """Parameters of one listing session; the token is updated per page."""

    bucket: str = ""
    prefix: str = ""
    delimiter: str = "/"
    continuation_token: Optional[str] = None
    versions: bool = False
    with_metadata: bool = False


@dataclass
class ObjectPage:
    """One page returned by the object store."""

    common_prefixes: list[str] = field(default_factory=list)
    contents: list[ObjectRecord] = field(default_factory=list)
    next_continuation_token: Optional[str] = None
    next_key_marker: Optional[str] = None
    next_version_id_marker: Optional[str] = None


@dataclass(frozen=True)
class PartResult:
    """A successfully uploaded part of a multipart session."""

    part_number: int
    etag: str
    size: int = 0
    checksum: Optional[str] = None


class UploadState(enum.Enum):
    IDLE = "idle"
    SESSION_OPEN = "session-open"
    UPLOADING = "uploading"
    COMMITTING = "committing"
    DONE = "done"
    ABORTING = "aborting"
    FAILED = "failed"


@dataclass
class UploadSession:
    """State of one multipart upload."""

    bucket: str
    key: str
    upload_id: str
    chunk_size: int
    parts: list[PartResult] = field(default_factory=list)
    state: UploadState = UploadState.SESSION_OPEN
    bytes_read: int = 0

    @property
    def total_bytes(self) -> int:
        return sum(part.size for part in self.parts)
