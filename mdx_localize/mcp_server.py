"""MCP server exposing the image localizer as tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .config import LocalizerConfig, resolve_state_path, resolve_vault_root
from .orchestrator import ImageLocalizer, build_localizer
from .utils import normalize_path

logger = logging.getLogger("mdx_localize.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="mdx-localize")

_localizer: Optional[ImageLocalizer] = None


def get_localizer() -> ImageLocalizer:
    """Build the process-wide localizer on first use and prune stale mappings."""
    global _localizer
    if _localizer is None:
        vault_root = resolve_vault_root()
        config = LocalizerConfig(
            vault_root=vault_root,
            state_path=resolve_state_path(vault_root),
        )
        # No interactive prompt here: callers pass a referer or quick=True.
        _localizer = build_localizer(config)
        _localizer.startup()
    return _localizer


@mcp.tool()
async def list_images(document: str) -> List[Dict[str, Optional[str]]]:
    """List remote images referenced by a note with their download status."""
    localizer = get_localizer()
    images = localizer.on_document_opened(normalize_path(document))
    return [image.to_dict() for image in images]


@mcp.tool()
async def download_images(
    document: str,
    urls: Optional[List[str]] = None,
    referer: Optional[str] = None,
    quick: bool = False,
) -> Dict[str, Any]:
    """Download remote images of a note (all of them unless urls is given) and rewrite it."""
    localizer = get_localizer()
    summary = await localizer.download_selected(
        normalize_path(document),
        urls,
        referer=referer,
        bypass_prompt=quick,
    )
    return summary.to_dict()


@mcp.tool()
async def retry_failed(
    document: str,
    referer: Optional[str] = None,
    quick: bool = False,
) -> Dict[str, Any]:
    """Retry the images of a note whose last download failed."""
    localizer = get_localizer()
    summary = await localizer.retry_failed(
        normalize_path(document),
        referer=referer,
        bypass_prompt=quick,
    )
    return summary.to_dict()


@mcp.tool()
async def revert_to_remote(document: str) -> Dict[str, Any]:
    """Point a note's local images back at their original remote URLs."""
    return get_localizer().revert_to_remote(normalize_path(document)).to_dict()


@mcp.tool()
async def delete_local_images(document: str) -> Dict[str, Any]:
    """Revert a note to remote URLs and delete the local images only it uses."""
    return get_localizer().delete_local_images(normalize_path(document)).to_dict()


@mcp.tool()
async def document_deleted(document: str) -> Dict[str, Any]:
    """Report that a note was deleted so its mappings (and, if enabled, images) are removed."""
    return get_localizer().on_document_deleted(normalize_path(document)).to_dict()


@mcp.tool()
async def prune() -> Dict[str, Any]:
    """Drop mappings for notes and images that no longer exist."""
    report = get_localizer().prune_orphans()
    return {
        "removed_documents": report.removed_documents,
        "removed_paths": report.removed_paths,
    }


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
