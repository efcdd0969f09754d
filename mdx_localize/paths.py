"""Destination directory resolution and collision-free file naming."""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional

from .collaborators import Vault
from .config import Settings
from .errors import PathAllocationError
from .utils import document_dir, is_relative_marker, join_vault_path, normalize_path, random_token
from .vault import unique_name

logger = logging.getLogger("mdx_localize.paths")


def generate_filename(
    extension: str,
    now: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """Build ``{unix_seconds}_{5 random chars}{extension}``."""
    timestamp = int(time.time() if now is None else now)
    return f"{timestamp}_{random_token(5, rng)}{extension}"


def resolve_custom_dir(custom_dir: str, doc_key: str) -> Optional[str]:
    """Resolve the configured asset directory for a document, or None when unset."""
    custom_dir = custom_dir.strip()
    if not custom_dir:
        return None
    if is_relative_marker(custom_dir):
        return join_vault_path(document_dir(doc_key), custom_dir)
    return normalize_path(custom_dir)


class PathAllocator:
    """Choose where a downloaded image is written inside the vault."""

    def __init__(
        self,
        vault: Vault,
        settings_source: Callable[[], Settings],
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.vault = vault
        self.settings_source = settings_source
        self.clock = clock
        self.rng = rng

    def allocate(self, doc_key: str, extension: str) -> str:
        """Return a free vault path for a new image belonging to ``doc_key``.

        Creates the custom directory when needed. Falls back to the vault's
        default attachment location if the custom directory is unusable.
        """
        filename = generate_filename(extension, now=self.clock(), rng=self.rng)
        custom_dir = resolve_custom_dir(self.settings_source().custom_assets_dir, doc_key)
        if custom_dir is not None:
            try:
                if not self.vault.exists(custom_dir):
                    self.vault.ensure_dir(custom_dir)
                name = unique_name(
                    filename,
                    lambda candidate: self.vault.exists(join_vault_path(custom_dir, candidate)),
                )
                path = join_vault_path(custom_dir, name)
                logger.debug("Allocated %s in custom directory %s", path, custom_dir)
                return path
            except (OSError, ValueError) as exc:
                logger.warning(
                    "Custom image directory %s is not usable (%s); using the attachment folder",
                    custom_dir,
                    exc,
                )
        try:
            return self.vault.available_attachment_path(filename, doc_key)
        except (OSError, ValueError) as exc:
            raise PathAllocationError(
                f"Could not allocate a path for {filename} ({doc_key}): {exc}"
            ) from exc
