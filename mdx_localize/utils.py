"""Utility helpers for vault path normalization and file naming."""

from __future__ import annotations

import posixpath
import random
import re
from typing import Optional
from urllib.parse import unquote

SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
REMOTE_PREFIXES = ("http://", "https://")
# Ambiguous glyphs (l, o, 0, 1) are left out.
TOKEN_ALPHABET = "abcdefghijkmnpqrstuvwxyz23456789"


def is_remote_url(target: str) -> bool:
    """Return True when ``target`` is an absolute HTTP(S) URL."""
    return target.strip().lower().startswith(REMOTE_PREFIXES)


def has_uri_scheme(target: str) -> bool:
    """Return True for targets such as ``data:``, ``mailto:`` or ``obsidian://``."""
    match = SCHEME_PATTERN.match(target)
    if not match:
        return False
    # A single letter followed by a colon is a Windows drive, not a scheme.
    return len(match.group(0)) > 2


def normalize_path(path: str) -> str:
    """Convert a vault path to the canonical ``a/b/c.png`` form."""
    normalized = path.replace("\\", "/").strip()
    normalized = normalized.lstrip("/")
    if not normalized:
        return ""
    normalized = posixpath.normpath(normalized)
    return "" if normalized == "." else normalized


def document_dir(doc_key: str) -> str:
    return posixpath.dirname(normalize_path(doc_key))


def join_vault_path(*parts: str) -> str:
    """Join vault path segments and normalize the result."""
    cleaned = [part.replace("\\", "/") for part in parts if part]
    if not cleaned:
        return ""
    return normalize_path(posixpath.join(*cleaned))


def is_relative_marker(path: str) -> bool:
    """Return True for directory settings that are relative to the document.

    Any leading dot counts, so hidden folders such as ``.assets`` live next
    to the document too.
    """
    return path.startswith(".")


def note_relative_target(path: str, doc_key: str) -> str:
    """Return the embed target that reaches vault ``path`` from ``doc_key``."""
    return posixpath.relpath(normalize_path(path), document_dir(doc_key) or ".")


def resolve_local_target(target: str, doc_key: str) -> str:
    """Map an embed target to a vault path.

    A leading ``/`` means vault-root relative; anything else is relative to
    the document's directory. Percent-escapes are decoded.
    """
    decoded = unquote(target)
    if decoded.startswith(("/", "\\")):
        return normalize_path(decoded)
    return join_vault_path(document_dir(doc_key), decoded)


def random_token(length: int = 5, rng: Optional[random.Random] = None) -> str:
    chooser = rng or random
    return "".join(chooser.choice(TOKEN_ALPHABET) for _ in range(length))
