"""Image embed extraction and front-matter parsing utilities."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterator, List, Tuple

import yaml

from .models import ImageEmbed, ImageKind, ImageReference
from .utils import has_uri_scheme, is_remote_url

logger = logging.getLogger("mdx_localize")

# ![alt](target "optional title"); the target may be <bracketed> or hold one
# level of balanced parentheses.
IMAGE_EMBED_PATTERN = re.compile(
    r"!\[(?P<alt>[^\]\n]*)\]\("
    r"(?P<target><[^<>\n]*>|[^()\n]*?(?:\([^()\n]*\)[^()\n]*?)*)"
    r"(?P<title>\s+(?:\"[^\"\n]*\"|'[^'\n]*'))?"
    r"\s*\)"
)
FRONT_MATTER_PATTERN = re.compile(r"\A---[ \t]*\r?\n(?P<body>.*?)(?:\r?\n)?^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE)


def iter_image_embeds(text: str) -> Iterator[ImageEmbed]:
    """Yield every well-formed image embed in ``text`` in document order."""
    for match in IMAGE_EMBED_PATTERN.finditer(text):
        raw_target = match.group("target").strip()
        bracketed = raw_target.startswith("<") and raw_target.endswith(">")
        target = raw_target[1:-1].strip() if bracketed else raw_target
        if not target:
            continue
        yield ImageEmbed(
            alt=match.group("alt"),
            target=target,
            title=match.group("title") or "",
            start=match.start(),
            end=match.end(),
            bracketed=bracketed,
        )


def is_local_target(target: str) -> bool:
    return not is_remote_url(target) and not has_uri_scheme(target)


def extract_image_references(text: str) -> List[ImageReference]:
    """Classify every embed target as remote or local, keeping duplicates."""
    references: List[ImageReference] = []
    for embed in iter_image_embeds(text):
        if is_remote_url(embed.target):
            references.append(ImageReference(embed.target, ImageKind.REMOTE, embed.alt))
        elif is_local_target(embed.target):
            references.append(ImageReference(embed.target, ImageKind.LOCAL, embed.alt))
    return references


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


def extract_remote_urls(text: str) -> List[str]:
    """Return remote image URLs in encounter order with duplicates removed."""
    return _unique(
        [ref.url for ref in extract_image_references(text) if ref.kind is ImageKind.REMOTE]
    )


def extract_local_targets(text: str) -> List[str]:
    """Return local image targets, exactly as written, in encounter order."""
    return _unique(
        [ref.url for ref in extract_image_references(text) if ref.kind is ImageKind.LOCAL]
    )


def split_front_matter(text: str) -> Tuple[Dict[str, Any], str]:
    """Split a leading YAML metadata block from the document body.

    Returns an empty mapping when the block is missing, malformed, or not a
    mapping; the body is then the whole text.
    """
    match = FRONT_MATTER_PATTERN.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group("body"))
    except yaml.YAMLError as exc:
        logger.debug("Ignoring malformed front matter: %s", exc)
        return {}, text
    if not isinstance(data, dict):
        return {}, text
    return data, text[match.end():]
