"""Exception types raised by the localizer core."""

from __future__ import annotations

from typing import Optional


class LocalizeError(Exception):
    """Base class for localizer failures."""


class RefererUnresolved(LocalizeError):
    """No referer could be derived and nobody was available to supply one."""

    def __init__(self, doc_key: str) -> None:
        super().__init__(
            f"Could not determine a referer for {doc_key}; supply one or use quick download"
        )
        self.doc_key = doc_key


class DocumentNotFound(LocalizeError, FileNotFoundError):
    """The requested document key does not exist in the vault."""

    def __init__(self, doc_key: str) -> None:
        super().__init__(f"Document does not exist: {doc_key}")
        self.doc_key = doc_key


class RequestInProgress(LocalizeError):
    """A request for the same document is already running."""

    def __init__(self, doc_key: str) -> None:
        super().__init__(f"A request for {doc_key} is already in progress")
        self.doc_key = doc_key


class DownloadError(LocalizeError):
    """A single image could not be fetched or was rejected."""

    reason = "download"

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url


class TransportError(DownloadError):
    reason = "transport"


class UnsupportedTypeError(DownloadError):
    reason = "unsupported_type"

    def __init__(
        self,
        url: str,
        content_type: Optional[str],
        referer_suspect: bool = False,
    ) -> None:
        message = f"Unsupported file type: {content_type or '(none)'}"
        if referer_suspect:
            message += " (remote resource is not an image, please check your referer)"
        super().__init__(url, message)
        self.content_type = content_type
        self.referer_suspect = referer_suspect


class TooSmallError(DownloadError):
    reason = "too_small"

    def __init__(self, url: str, size: int, minimum: int) -> None:
        super().__init__(
            url,
            f"Downloaded content is {size} bytes (< {minimum}); it does not look like an image",
        )
        self.size = size
        self.minimum = minimum


class PathAllocationError(LocalizeError):
    """Neither the custom directory nor the default attachment location was usable."""


class PersistenceError(LocalizeError):
    """The mapping state could not be serialised or written."""
