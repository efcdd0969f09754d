"""Image downloading and validation utilities."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Tuple
from urllib.parse import quote, urlparse

import requests
from filetype import guess

from .config import DownloadConfig
from .errors import TooSmallError, TransportError, UnsupportedTypeError
from .models import DownloadedImage

logger = logging.getLogger("mdx_localize.images")

IMAGE_SUBTYPE_EXTENSIONS: Dict[str, str] = {
    "jpeg": ".jpg",
    "jpg": ".jpg",
    "png": ".png",
    "gif": ".gif",
    "webp": ".webp",
    "svg+xml": ".svg",
    "tiff": ".tiff",
    "bmp": ".bmp",
    "ico": ".ico",
    "x-icon": ".ico",
    "vnd.microsoft.icon": ".ico",
    "avif": ".avif",
    "heic": ".heic",
    "heif": ".heif",
}
OCTET_STREAM = "application/octet-stream"
SVG_EXTENSION = ".svg"
# Characters left alone by JavaScript's encodeURI.
_URI_SAFE_CHARS = ";,/?:@&=+$-_.!~*'()#"


def encode_referer(referer: str) -> str:
    """Percent-encode a referer the way browsers encode a full URI."""
    return quote(referer, safe=_URI_SAFE_CHARS)


def split_content_type(content_type: Optional[str]) -> Tuple[str, str]:
    media = (content_type or "").split(";")[0].strip().lower()
    major, _, subtype = media.partition("/")
    return major, subtype


def detect_image_extension(data: bytes) -> Optional[str]:
    """Detect an image extension from the file signature using filetype."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        return IMAGE_SUBTYPE_EXTENSIONS.get(kind.mime.split("/", 1)[1])
    return None


def extension_from_content_type(content_type: Optional[str], url: str) -> Optional[str]:
    """Map a declared Content-Type to a file extension, or None when unsupported."""
    major, subtype = split_content_type(content_type)
    if major == "image" and subtype in IMAGE_SUBTYPE_EXTENSIONS:
        return IMAGE_SUBTYPE_EXTENSIONS[subtype]
    # Some object stores serve WebP files as a generic binary stream.
    if f"{major}/{subtype}" == OCTET_STREAM and urlparse(url).path.lower().endswith(".webp"):
        return ".webp"
    return None


class ImageDownloader:
    """Fetch one remote image per call and validate that it really is an image."""

    def __init__(
        self,
        config: Optional[DownloadConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or DownloadConfig()
        self.session = session or requests.Session()

    def build_headers(self, referer: Optional[str]) -> Dict[str, str]:
        headers = {
            "Accept": self.config.accept,
            "User-Agent": self.config.user_agent,
        }
        if referer:
            headers["Referer"] = encode_referer(referer)
        return headers

    def _may_sniff(self, content_type: str) -> bool:
        major, subtype = split_content_type(content_type)
        return self.config.sniff_octet_stream and f"{major}/{subtype}" == OCTET_STREAM

    def _reject_type(self, url: str, content_type: str) -> UnsupportedTypeError:
        major, _ = split_content_type(content_type)
        referer_suspect = self.config.flag_text_responses and major == "text"
        if referer_suspect:
            logger.warning(
                "Remote resource %s is not an image (Content-Type=%s); check the referer",
                url,
                content_type,
            )
        return UnsupportedTypeError(url, content_type, referer_suspect=referer_suspect)

    def fetch_sync(self, url: str, referer: Optional[str] = None) -> DownloadedImage:
        """Perform exactly one GET for ``url`` and return the validated payload."""
        headers = self.build_headers(referer)
        try:
            with self.session.get(
                url,
                headers=headers,
                timeout=self.config.timeout,
                stream=True,
            ) as resp:
                resp.raise_for_status()
                content_type = resp.headers.get("Content-Type", "")
                extension = extension_from_content_type(content_type, url)
                if extension is None and not self._may_sniff(content_type):
                    raise self._reject_type(url, content_type)
                data = resp.content
        except requests.RequestException as exc:
            logger.warning("Failed to fetch image %s: %s", url, exc)
            raise TransportError(url, str(exc)) from exc

        if extension is None:
            extension = detect_image_extension(data)
            if extension is None:
                raise self._reject_type(url, content_type)

        if extension != SVG_EXTENSION and len(data) < self.config.min_image_bytes:
            logger.warning("Skipping %s: response too small (%d bytes)", url, len(data))
            raise TooSmallError(url, len(data), self.config.min_image_bytes)

        logger.debug(
            "Fetched %s (%d bytes, Content-Type=%s, extension=%s)",
            url,
            len(data),
            content_type,
            extension,
        )
        return DownloadedImage(url=url, data=data, extension=extension, content_type=content_type)

    async def fetch(self, url: str, referer: Optional[str] = None) -> DownloadedImage:
        """Run :meth:`fetch_sync` without blocking the event loop."""
        return await asyncio.to_thread(self.fetch_sync, url, referer)
