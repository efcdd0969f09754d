"""Command-line entry point for the image localizer."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import (
    DEFAULT_ATTACHMENT_FOLDER,
    DEFAULT_MIN_IMAGE_BYTES,
    DownloadConfig,
    LocalizerConfig,
    resolve_state_path,
    resolve_vault_root,
)
from .errors import LocalizeError
from .orchestrator import ImageLocalizer, build_localizer
from .utils import normalize_path

logger = logging.getLogger("mdx_localize.cli")


async def prompt_for_referer(doc_key: str, suggestion: str) -> Optional[str]:
    """Ask on the terminal; an empty answer downloads without a referer, EOF cancels."""
    question = f"Referer URL for {doc_key}"
    if suggestion:
        question += f" [{suggestion}]"
    try:
        answer = await asyncio.to_thread(input, question + ": ")
    except EOFError:
        return None
    return answer.strip() or suggestion


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--vault",
        type=Path,
        default=None,
        help="Root directory holding the notes (default: $MDX_LOCALIZE_VAULT or the current directory)",
    )
    parser.add_argument(
        "--state",
        type=Path,
        default=None,
        help="State file storing settings and image mappings (default: <vault>/.mdx-localize.json)",
    )
    parser.add_argument(
        "--attachments",
        default=DEFAULT_ATTACHMENT_FOLDER,
        help="Default attachment folder; './name' places it next to each note",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_document_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("document", help="Note path relative to the vault root")


def _add_download_arguments(parser: argparse.ArgumentParser) -> None:
    _add_document_argument(parser)
    parser.add_argument(
        "--url",
        dest="urls",
        action="append",
        default=None,
        help="Only download this image URL (repeatable)",
    )
    parser.add_argument(
        "--referer",
        default=None,
        help="Referer header to send instead of the one found in the note",
    )
    parser.add_argument(
        "--quick",
        action="store_true",
        help="Never prompt; download without a referer when none is found",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-request timeout in seconds (default: none)",
    )
    parser.add_argument(
        "--min-bytes",
        type=int,
        default=DEFAULT_MIN_IMAGE_BYTES,
        help="Reject non-SVG responses smaller than this many bytes",
    )
    parser.add_argument(
        "--sniff",
        action="store_true",
        help="Identify application/octet-stream responses by their file signature",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Download remote images referenced by Markdown notes and keep local copies in sync.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="Show remote images of a note and their status")
    _add_document_argument(list_parser)

    download_parser = subparsers.add_parser("download", help="Download remote images and rewrite the note")
    _add_download_arguments(download_parser)

    revert_parser = subparsers.add_parser("revert", help="Point local images back at their remote URLs")
    _add_document_argument(revert_parser)

    delete_parser = subparsers.add_parser(
        "delete", help="Revert a note and delete the local images it owns"
    )
    _add_document_argument(delete_parser)
    delete_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    forget_parser = subparsers.add_parser(
        "forget", help="Handle a note that was deleted outside the tool"
    )
    _add_document_argument(forget_parser)

    subparsers.add_parser("prune", help="Drop mappings for missing notes and images")

    config_parser = subparsers.add_parser("config", help="Show or change persisted settings")
    config_parser.add_argument(
        "--assets-dir",
        default=None,
        help="Custom image directory; './name' is relative to each note, '' restores the default",
    )
    auto_delete = config_parser.add_mutually_exclusive_group()
    auto_delete.add_argument(
        "--auto-delete",
        dest="auto_delete",
        action="store_true",
        default=None,
        help="Delete a note's images when the note is deleted",
    )
    auto_delete.add_argument(
        "--no-auto-delete",
        dest="auto_delete",
        action="store_false",
        help="Keep images when their note is deleted",
    )

    for sub in subparsers.choices.values():
        _add_common_arguments(sub)

    argv = list(sys.argv[1:] if argv is None else argv)
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> LocalizerConfig:
    vault_root = resolve_vault_root(args.vault)
    state_path = args.state or resolve_state_path(vault_root)
    download = DownloadConfig(
        timeout=getattr(args, "timeout", None),
        min_image_bytes=getattr(args, "min_bytes", DEFAULT_MIN_IMAGE_BYTES),
        sniff_octet_stream=getattr(args, "sniff", False),
    )
    return LocalizerConfig(
        vault_root=vault_root,
        state_path=state_path,
        attachment_folder=args.attachments,
        download=download,
    )


def _print_images(localizer: ImageLocalizer, doc_key: str) -> None:
    images = localizer.on_document_opened(doc_key)
    if not images:
        print("No external images found in this document.")
        return
    for image in images:
        suffix = f" -> {image.local_path}" if image.local_path else ""
        print(f"[{image.status.value:>7}] {image.url}{suffix}")


def _confirm(question: str) -> bool:
    try:
        answer = input(f"{question} [y/N]: ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def _run_config(localizer: ImageLocalizer, args: argparse.Namespace) -> None:
    changes = {}
    if args.assets_dir is not None:
        changes["custom_assets_dir"] = args.assets_dir
    if args.auto_delete is not None:
        changes["auto_delete_images"] = args.auto_delete
    if changes and not localizer.store.update_settings(**changes):
        logger.error("Settings changed in memory but could not be saved")
    settings = localizer.store.settings
    print(f"customAssetsDir: {settings.custom_assets_dir or '(attachment folder)'}")
    print(f"autoDeleteImages: {str(settings.auto_delete_images).lower()}")


def _run_command(localizer: ImageLocalizer, args: argparse.Namespace) -> int:
    if args.command == "config":
        _run_config(localizer, args)
        return 0
    if args.command == "prune":
        report = localizer.prune_orphans()
        print(
            f"Removed {len(report.removed_documents)} missing note(s) and "
            f"{sum(len(paths) for paths in report.removed_paths.values())} missing image(s)."
        )
        return 0

    doc_key = normalize_path(args.document)
    if args.command == "list":
        _print_images(localizer, doc_key)
        return 0
    if args.command == "download":
        localizer.on_document_opened(doc_key)
        summary = asyncio.run(
            localizer.download_selected(
                doc_key,
                args.urls,
                referer=args.referer,
                bypass_prompt=args.quick,
            )
        )
        for url, reason in summary.failed.items():
            print(f"failed: {url}: {reason}")
        return 1 if summary.failed and not summary.downloaded else 0
    if args.command == "revert":
        localizer.revert_to_remote(doc_key)
        return 0
    if args.command == "delete":
        if not args.yes and not _confirm(
            f'Delete all local images associated with "{doc_key}"?'
        ):
            print("Aborted.")
            return 1
        summary = localizer.delete_local_images(doc_key)
        return 1 if summary.delete_failures else 0
    if args.command == "forget":
        localizer.on_document_deleted(doc_key)
        return 0
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    config = build_config(args)
    localizer = build_localizer(config, prompt=prompt_for_referer)
    if args.command != "prune":
        localizer.prune_orphans()
    try:
        code = _run_command(localizer, args)
    except LocalizeError as exc:
        logger.error("%s", exc)
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
