"""Filesystem-backed document store used by the CLI and MCP front ends."""

from __future__ import annotations

import logging
import os
import posixpath
import tempfile
from pathlib import Path
from typing import Iterator, List

from .config import DEFAULT_ATTACHMENT_FOLDER
from .utils import document_dir, is_relative_marker, join_vault_path, normalize_path

logger = logging.getLogger("mdx_localize.vault")

DOCUMENT_SUFFIXES = {".md", ".markdown"}


def unique_name(filename: str, taken) -> str:
    """Append ``_1``, ``_2``, ... to the stem until ``taken(name)`` is False."""
    if not taken(filename):
        return filename
    stem, ext = posixpath.splitext(filename)
    counter = 1
    while True:
        candidate = f"{stem}_{counter}{ext}"
        if not taken(candidate):
            return candidate
        counter += 1


class LocalVault:
    """Expose a directory tree of Markdown notes through vault-relative paths."""

    def __init__(self, root: Path, attachment_folder: str = DEFAULT_ATTACHMENT_FOLDER) -> None:
        self.root = Path(root).expanduser().resolve()
        self.attachment_folder = attachment_folder

    def abspath(self, path: str) -> Path:
        normalized = normalize_path(path)
        if normalized == ".." or normalized.startswith("../"):
            raise ValueError(f"Path escapes the vault: {path}")
        return self.root / normalized if normalized else self.root

    def exists(self, path: str) -> bool:
        try:
            return self.abspath(path).exists()
        except ValueError:
            return False

    def is_document(self, path: str) -> bool:
        return Path(path).suffix.lower() in DOCUMENT_SUFFIXES

    def iter_documents(self) -> Iterator[str]:
        """Yield every Markdown document key under the root, sorted."""
        found: List[str] = []
        for candidate in self.root.rglob("*"):
            if candidate.is_file() and candidate.suffix.lower() in DOCUMENT_SUFFIXES:
                found.append(candidate.relative_to(self.root).as_posix())
        yield from sorted(found)

    def read_text(self, path: str) -> str:
        return self.abspath(path).read_text(encoding="utf-8")

    def write_text(self, path: str, text: str) -> None:
        destination = self.abspath(path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".mdx-", dir=destination.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(text)
            os.replace(tmp_name, destination)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def write_binary(self, path: str, data: bytes) -> None:
        destination = self.abspath(path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        # "x" refuses to clobber a file that appeared after allocation.
        with destination.open("xb") as handle:
            handle.write(data)

    def delete(self, path: str) -> None:
        self.abspath(path).unlink()

    def ensure_dir(self, path: str) -> None:
        self.abspath(path).mkdir(parents=True, exist_ok=True)

    def attachment_dir(self, doc_key: str) -> str:
        folder = self.attachment_folder.strip()
        if is_relative_marker(folder):
            return join_vault_path(document_dir(doc_key), folder)
        return normalize_path(folder)

    def available_attachment_path(self, filename: str, doc_key: str) -> str:
        """Return a free path for ``filename`` in the default attachment folder."""
        directory = self.attachment_dir(doc_key)
        self.ensure_dir(directory)
        name = unique_name(filename, lambda n: self.exists(join_vault_path(directory, n)))
        return join_vault_path(directory, name)
