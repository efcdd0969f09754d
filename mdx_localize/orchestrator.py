"""High-level orchestration of image download, revert, and cleanup workflows."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Sequence

from .collaborators import LoggingNotifier, Notifier, RefererPrompt, Vault
from .config import LocalizerConfig
from .content import extract_local_targets, extract_remote_urls
from .errors import (
    DocumentNotFound,
    DownloadError,
    PathAllocationError,
    RefererUnresolved,
    RequestInProgress,
    UnsupportedTypeError,
)
from .images import ImageDownloader
from .markdown import apply_downloads, revert
from .models import (
    CleanupSummary,
    DownloadedImage,
    DownloadStatus,
    DownloadSummary,
    ImageStatus,
    PruneReport,
    RequestState,
)
from .paths import PathAllocator
from .referer import resolve_referer
from .store import MappingStore
from .utils import is_remote_url, normalize_path, note_relative_target, resolve_local_target
from .vault import LocalVault

logger = logging.getLogger("mdx_localize")


class ImageFetcher(Protocol):
    async def fetch(self, url: str, referer: Optional[str] = None) -> DownloadedImage: ...


class ImageLocalizer:
    """Coordinate extraction, referer resolution, downloads, rewrites, and persistence.

    Download status is advisory and lives only in memory; the durable
    mappings belong to the :class:`MappingStore`. Requests for the same
    document must not overlap and are rejected with ``RequestInProgress``.
    """

    def __init__(
        self,
        vault: Vault,
        store: MappingStore,
        downloader: ImageFetcher,
        allocator: Optional[PathAllocator] = None,
        prompt: Optional[RefererPrompt] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.vault = vault
        self.store = store
        self.downloader = downloader
        self.allocator = allocator or PathAllocator(vault, lambda: store.settings)
        self.prompt = prompt
        self.notifier = notifier or LoggingNotifier()
        self.statuses: Dict[str, DownloadStatus] = {}
        self._states: Dict[str, RequestState] = {}

    # -- request bookkeeping ----------------------------------------------

    def state_of(self, doc_key: str) -> RequestState:
        return self._states.get(doc_key, RequestState.IDLE)

    def _enter(self, doc_key: str, state: RequestState) -> None:
        logger.debug("%s -> %s", doc_key, state.value)
        self._states[doc_key] = state

    @contextmanager
    def _request(self, doc_key: str, first_state: RequestState) -> Iterator[None]:
        if self.state_of(doc_key) is not RequestState.IDLE:
            raise RequestInProgress(doc_key)
        self._enter(doc_key, first_state)
        try:
            yield
        finally:
            self._states.pop(doc_key, None)

    def _read(self, doc_key: str) -> str:
        if not self.vault.exists(doc_key):
            raise DocumentNotFound(doc_key)
        return self.vault.read_text(doc_key)

    def _live_local_paths(self, doc_key: str, text: str) -> List[str]:
        return [
            resolve_local_target(target, doc_key)
            for target in extract_local_targets(text)
        ]

    # -- listing and reconciliation ---------------------------------------

    def list_images(self, doc_key: str, text: Optional[str] = None) -> List[ImageStatus]:
        """Return every remote image of a document, including already localized ones."""
        if text is None:
            text = self._read(doc_key)
        urls = extract_remote_urls(text)
        mapped = self.store.url_map_for(doc_key)
        urls.extend(url for url in mapped if url not in urls)
        live = {
            normalize_path(path)
            for path in self._live_local_paths(doc_key, text)
            if self.vault.exists(path)
        }

        images: List[ImageStatus] = []
        for url in urls:
            target = mapped.get(url)
            local_path = resolve_local_target(target, doc_key) if target else None
            if local_path and local_path in live:
                status = DownloadStatus.SUCCESS
            else:
                status = self.statuses.get(url, DownloadStatus.PENDING)
            images.append(ImageStatus(url=url, status=status, local_path=local_path))
        return images

    def on_document_opened(self, doc_key: str, text: Optional[str] = None) -> List[ImageStatus]:
        """Repair drift for a freshly opened document and report its images."""
        if text is None:
            text = self._read(doc_key)
        removed = self.store.prune_document(doc_key)
        if removed:
            logger.info("%d tracked image(s) of %s no longer exist", len(removed), doc_key)
        updates = self.store.reconcile(doc_key, self._live_local_paths(doc_key, text))
        self.statuses.update(updates)
        for url in extract_remote_urls(text):
            self.statuses.setdefault(url, DownloadStatus.PENDING)
        return self.list_images(doc_key, text)

    # -- downloads ---------------------------------------------------------

    async def _resolve_request_referer(
        self,
        doc_key: str,
        text: str,
        referer: Optional[str],
        bypass_prompt: bool,
    ) -> Optional[str]:
        if referer is not None:
            return referer
        resolved = resolve_referer(text)
        if resolved is not None:
            return resolved
        if bypass_prompt:
            logger.info("No referer found for %s; downloading without one", doc_key)
            return ""
        if self.prompt is None:
            raise RefererUnresolved(doc_key)
        self._enter(doc_key, RequestState.PROMPTING)
        return await self.prompt(doc_key, "")

    async def _download_one(
        self,
        doc_key: str,
        url: str,
        referer: str,
        summary: DownloadSummary,
    ) -> None:
        self.statuses[url] = DownloadStatus.PENDING
        try:
            image = await self.downloader.fetch(url, referer or None)
            local_path = self.allocator.allocate(doc_key, image.extension)
            self.vault.write_binary(local_path, image.data)
        except DownloadError as exc:
            self.statuses[url] = DownloadStatus.FAILED
            summary.failed[url] = str(exc)
            if isinstance(exc, UnsupportedTypeError) and exc.referer_suspect:
                self.notifier.notify(
                    "Remote resource is not an image, please check your referer.",
                    logging.WARNING,
                )
            return
        except (PathAllocationError, OSError, ValueError) as exc:
            logger.warning("Could not save image %s for %s: %s", url, doc_key, exc)
            self.statuses[url] = DownloadStatus.FAILED
            summary.failed[url] = str(exc)
            return

        self.store.record_download(doc_key, url, local_path, note_relative_target(local_path, doc_key))
        self.statuses[url] = DownloadStatus.SUCCESS
        summary.downloaded[url] = local_path
        logger.info("Saved %s as %s", url, local_path)

    async def download_selected(
        self,
        doc_key: str,
        urls: Optional[Sequence[str]] = None,
        referer: Optional[str] = None,
        bypass_prompt: bool = False,
    ) -> DownloadSummary:
        """Download ``urls`` (default: every remote image) and rewrite the document.

        Each URL is attempted once, in order; a failure never stops the rest
        of the batch. The document is rewritten only if something succeeded.
        Calling it again with the failed URLs is the retry path.
        """
        with self._request(doc_key, RequestState.EXTRACTING_URLS):
            text = self._read(doc_key)
            candidates = extract_remote_urls(text) if urls is None else urls
            requested = list(dict.fromkeys(url for url in candidates if is_remote_url(url)))
            summary = DownloadSummary(doc_key=doc_key, requested=requested)
            if not requested:
                summary.message = "No external images found in this document."
                self.notifier.notify(summary.message)
                return summary

            self._enter(doc_key, RequestState.RESOLVING_REFERER)
            resolved = await self._resolve_request_referer(doc_key, text, referer, bypass_prompt)
            if resolved is None:
                summary.cancelled = True
                summary.message = "Download cancelled; no referer was supplied."
                self.notifier.notify(summary.message)
                return summary
            summary.referer = resolved

            self._enter(doc_key, RequestState.DOWNLOADING)
            with self.store.batch() as flush:
                for url in requested:
                    await self._download_one(doc_key, url, resolved, summary)
                if summary.downloaded:
                    self._enter(doc_key, RequestState.REWRITING)
                    self._rewrite_downloads(doc_key, summary)
                self._enter(doc_key, RequestState.PERSISTING)
            summary.persisted = flush.persisted

        self._report_download(summary)
        return summary

    def _rewrite_downloads(self, doc_key: str, summary: DownloadSummary) -> None:
        try:
            # Re-read so edits made while downloading are kept.
            current = self.vault.read_text(doc_key)
            targets = self.store.url_map_for(doc_key)
            updated = apply_downloads(current, {url: targets[url] for url in summary.downloaded})
            if updated != current:
                self.vault.write_text(doc_key, updated)
                summary.rewritten = True
        except OSError as exc:
            logger.error("Could not rewrite %s: %s", doc_key, exc)
            self.notifier.notify(f"Images were saved but {doc_key} could not be updated.", logging.ERROR)

    def _report_download(self, summary: DownloadSummary) -> None:
        parts = []
        if summary.downloaded:
            parts.append(f"Downloaded {summary.success_count} images successfully!")
        if summary.failed:
            parts.append(
                f"Could not download {len(summary.failed)} image(s); you can retry them."
            )
        if not summary.persisted:
            parts.append("Image mappings could not be saved and will be retried.")
        summary.message = " ".join(parts)
        level = logging.WARNING if summary.failed or not summary.persisted else logging.INFO
        self.notifier.notify(summary.message, level)

    async def download_all(
        self,
        doc_key: str,
        referer: Optional[str] = None,
        bypass_prompt: bool = False,
    ) -> DownloadSummary:
        return await self.download_selected(doc_key, None, referer=referer, bypass_prompt=bypass_prompt)

    def failed_urls(self, doc_key: str) -> List[str]:
        return [
            image.url
            for image in self.list_images(doc_key)
            if image.status is DownloadStatus.FAILED
        ]

    async def retry_failed(
        self,
        doc_key: str,
        referer: Optional[str] = None,
        bypass_prompt: bool = False,
    ) -> DownloadSummary:
        """Re-run the download for URLs of ``doc_key`` currently marked failed."""
        failed = self.failed_urls(doc_key)
        if not failed:
            summary = DownloadSummary(doc_key=doc_key, message="No failed images to retry.")
            self.notifier.notify(summary.message)
            return summary
        return await self.download_selected(doc_key, failed, referer=referer, bypass_prompt=bypass_prompt)

    # -- revert and cleanup ------------------------------------------------

    def _revert_text(self, doc_key: str, text: str, mapping: Dict[str, str]) -> int:
        updated, count = revert(text, mapping)
        if count:
            self.vault.write_text(doc_key, updated)
        for url in mapping.values():
            self.statuses[url] = DownloadStatus.PENDING
        return count

    def _delete_files(self, doc_key: str, paths: Iterable[str], summary: CleanupSummary) -> None:
        for path in paths:
            if self.store.is_shared(path, doc_key):
                logger.debug("Keeping %s; another document still uses it", path)
                summary.kept_shared.append(path)
                continue
            if not self.vault.exists(path):
                logger.debug("Image %s is already gone", path)
                continue
            try:
                self.vault.delete(path)
            except (OSError, ValueError) as exc:
                logger.warning("Could not delete %s: %s", path, exc)
                summary.delete_failures.append(path)
                continue
            summary.deleted.append(path)

    def revert_to_remote(self, doc_key: str) -> CleanupSummary:
        """Point local images of a document back at their remote URLs without deleting files."""
        with self._request(doc_key, RequestState.REWRITING):
            text = self._read(doc_key)
            summary = CleanupSummary(doc_key=doc_key)
            mapping = self.store.local_to_remote(doc_key)
            if not mapping:
                summary.message = "No local images found to revert!"
            else:
                summary.replaced = self._revert_text(doc_key, text, mapping)
                if summary.replaced:
                    summary.message = f"Reverted {summary.replaced} images to remote URLs!"
                else:
                    summary.message = "No local images were found in the current document!"
        self.notifier.notify(summary.message)
        return summary

    def delete_local_images(self, doc_key: str) -> CleanupSummary:
        """Revert a document to remote URLs, delete its unshared images, and forget it."""
        with self._request(doc_key, RequestState.REWRITING):
            text = self._read(doc_key)
            summary = CleanupSummary(doc_key=doc_key)
            paths = self.store.files_for(doc_key)
            if not paths:
                summary.message = "No local images found to delete!"
                self.notifier.notify(summary.message)
                return summary

            summary.replaced = self._revert_text(doc_key, text, self.store.local_to_remote(doc_key))
            self._delete_files(doc_key, paths, summary)
            self._enter(doc_key, RequestState.PERSISTING)
            with self.store.batch() as flush:
                self.store.remove_document(doc_key)
            summary.persisted = flush.persisted

        summary.message = (
            f"Replaced {summary.replaced} image references and deleted "
            f"{len(summary.deleted)} local image files!"
        )
        level = logging.WARNING if summary.delete_failures else logging.INFO
        self.notifier.notify(summary.message, level)
        return summary

    def on_document_deleted(self, doc_key: str) -> CleanupSummary:
        """Forget a removed document, deleting its unshared images when auto-delete is on."""
        summary = CleanupSummary(doc_key=doc_key)
        if doc_key not in self.store.tracked_documents():
            return summary
        if self.store.settings.auto_delete_images:
            self._delete_files(doc_key, self.store.files_for(doc_key), summary)
        with self.store.batch() as flush:
            self.store.remove_document(doc_key)
        summary.persisted = flush.persisted
        if summary.deleted:
            summary.message = f'Deleted {len(summary.deleted)} associated images for "{doc_key}"'
            self.notifier.notify(summary.message)
        return summary

    def on_document_renamed(self, old_key: str, new_key: str) -> bool:
        return self.store.rename_document(old_key, new_key)

    def prune_orphans(self) -> PruneReport:
        return self.store.prune_orphans()

    def startup(self, open_documents: Iterable[str] = ()) -> PruneReport:
        """Prune stale mappings, then reconcile every document already open."""
        report = self.prune_orphans()
        for doc_key in open_documents:
            try:
                self.on_document_opened(doc_key)
            except DocumentNotFound:
                logger.warning("Open document %s does not exist; skipping", doc_key)
        return report


def build_localizer(
    config: LocalizerConfig,
    prompt: Optional[RefererPrompt] = None,
    notifier: Optional[Notifier] = None,
) -> ImageLocalizer:
    """Wire a filesystem vault, persisted store, and HTTP downloader together."""
    vault = LocalVault(config.vault_root, config.attachment_folder)
    store = MappingStore.load(config.state_path, vault)
    return ImageLocalizer(
        vault=vault,
        store=store,
        downloader=ImageDownloader(config.download),
        prompt=prompt,
        notifier=notifier,
    )
