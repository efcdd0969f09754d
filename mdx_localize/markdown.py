"""Rewrite image embeds between remote URLs and local paths."""

from __future__ import annotations

from typing import Mapping, Set, Tuple

from .content import iter_image_embeds
from .models import ImageEmbed
from .utils import is_remote_url


def format_embed(embed: ImageEmbed, target: str) -> str:
    """Render ``embed`` with a new target, keeping alt-text and title untouched."""
    if embed.bracketed or " " in target:
        target = f"<{target}>"
    return f"![{embed.alt}]({target}{embed.title})"


def _rewrite(text: str, replacements: Mapping[str, str], remote_only: bool) -> Tuple[str, Set[str]]:
    if not replacements:
        return text, set()
    pieces = []
    cursor = 0
    replaced: Set[str] = set()
    for embed in iter_image_embeds(text):
        if remote_only and not is_remote_url(embed.target):
            continue
        new_target = replacements.get(embed.target)
        if new_target is None:
            continue
        pieces.append(text[cursor:embed.start])
        pieces.append(format_embed(embed, new_target))
        cursor = embed.end
        replaced.add(embed.target)
    if not replaced:
        return text, replaced
    pieces.append(text[cursor:])
    return "".join(pieces), replaced


def apply_downloads(text: str, url_to_local: Mapping[str, str]) -> str:
    """Point every embed whose remote URL was downloaded at its local copy."""
    updated, _ = _rewrite(text, url_to_local, remote_only=True)
    return updated


def revert(text: str, local_to_url: Mapping[str, str]) -> Tuple[str, int]:
    """Point embeds of known local paths back at their remote URLs.

    Paths are compared literally against the target as written. The count
    is the number of distinct local paths that were found and replaced.
    """
    updated, replaced = _rewrite(text, local_to_url, remote_only=False)
    return updated, len(replaced)
