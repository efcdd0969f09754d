"""Referer discovery from document metadata and leading text."""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Optional

from .content import split_front_matter
from .utils import is_remote_url

logger = logging.getLogger("mdx_localize.referer")

REFERER_SCAN_CHARS = 200
URL_TOKEN_PATTERN = re.compile(r"https?://[^\s]+", re.IGNORECASE)


def referer_from_metadata(metadata: Mapping[str, Any]) -> Optional[str]:
    """Return the first string metadata value shaped like an HTTP(S) URL."""
    for key, value in metadata.items():
        if isinstance(value, str) and is_remote_url(value):
            logger.debug("Found referer in metadata field %s: %s", key, value)
            return value.strip()
    return None


def referer_from_text(text: str, limit: int = REFERER_SCAN_CHARS) -> Optional[str]:
    """Return the first URL-looking token within the first ``limit`` characters."""
    match = URL_TOKEN_PATTERN.search(text[:limit])
    if match:
        logger.debug("Found referer in document text: %s", match.group(0))
        return match.group(0)
    return None


def resolve_referer(
    text: str,
    metadata: Optional[Mapping[str, Any]] = None,
    limit: int = REFERER_SCAN_CHARS,
) -> Optional[str]:
    """Derive a referer for a document, or None when it is unresolved."""
    if metadata is None:
        metadata, _ = split_front_matter(text)
    return referer_from_metadata(metadata) or referer_from_text(text, limit)
