"""Data models used throughout the localizer pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class ImageKind(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


class DownloadStatus(str, Enum):
    """Advisory per-URL state shown to the user; never persisted."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class RequestState(str, Enum):
    """Stages a document-processing request passes through."""

    IDLE = "idle"
    EXTRACTING_URLS = "extracting_urls"
    RESOLVING_REFERER = "resolving_referer"
    PROMPTING = "prompting"
    DOWNLOADING = "downloading"
    REWRITING = "rewriting"
    PERSISTING = "persisting"


@dataclass(frozen=True)
class ImageEmbed:
    """A single ``![alt](target)`` occurrence located in document text."""

    alt: str
    target: str
    title: str
    start: int
    end: int
    bracketed: bool = False


@dataclass(frozen=True)
class ImageReference:
    """Image target extracted from a document at a point in time."""

    url: str
    kind: ImageKind
    alt: str = ""


@dataclass(frozen=True)
class DownloadedImage:
    """Validated image payload returned by the downloader."""

    url: str
    data: bytes
    extension: str
    content_type: str


@dataclass
class ImageStatus:
    """Remote image listed for a document together with its status."""

    url: str
    status: DownloadStatus
    local_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"url": self.url, "status": self.status.value, "local_path": self.local_path}


@dataclass
class DownloadSummary:
    """Outcome of one download batch for a document."""

    doc_key: str
    requested: List[str] = field(default_factory=list)
    downloaded: Dict[str, str] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)
    referer: Optional[str] = None
    rewritten: bool = False
    persisted: bool = True
    cancelled: bool = False
    message: str = ""

    @property
    def success_count(self) -> int:
        return len(self.downloaded)

    def to_dict(self) -> Dict[str, object]:
        return {
            "doc_key": self.doc_key,
            "requested": list(self.requested),
            "downloaded": dict(self.downloaded),
            "failed": dict(self.failed),
            "referer": self.referer,
            "rewritten": self.rewritten,
            "persisted": self.persisted,
            "cancelled": self.cancelled,
            "message": self.message,
        }


@dataclass
class CleanupSummary:
    """Outcome of a revert, delete, or document-deleted workflow."""

    doc_key: str
    replaced: int = 0
    deleted: List[str] = field(default_factory=list)
    kept_shared: List[str] = field(default_factory=list)
    delete_failures: List[str] = field(default_factory=list)
    persisted: bool = True
    message: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "doc_key": self.doc_key,
            "replaced": self.replaced,
            "deleted": list(self.deleted),
            "kept_shared": list(self.kept_shared),
            "delete_failures": list(self.delete_failures),
            "persisted": self.persisted,
            "message": self.message,
        }


@dataclass
class PruneReport:
    """Entries dropped by a consistency-repair pass."""

    removed_documents: List[str] = field(default_factory=list)
    removed_paths: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.removed_documents or self.removed_paths)
