"""Persisted document-to-image mappings and their consistency repair."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .collaborators import Vault
from .config import Settings
from .errors import PersistenceError
from .models import DownloadStatus, PruneReport
from .utils import normalize_path, resolve_local_target

logger = logging.getLogger("mdx_localize.store")


@dataclass
class FlushResult:
    """Set when a :meth:`MappingStore.batch` block exits."""

    persisted: bool = True
    error: Optional[PersistenceError] = None


def _parse_file_image_map(raw: Any) -> Dict[str, List[str]]:
    if isinstance(raw, str):
        # Older state files stored this map as a JSON string.
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        return {}
    parsed: Dict[str, List[str]] = {}
    for doc_key, paths in raw.items():
        if not isinstance(paths, list):
            continue
        parsed[doc_key] = list(dict.fromkeys(str(path) for path in paths))
    return parsed


def _parse_url_mapping(raw: Any) -> Dict[str, Dict[str, str]]:
    if not isinstance(raw, dict):
        return {}
    parsed: Dict[str, Dict[str, str]] = {}
    for doc_key, mapping in raw.items():
        if isinstance(mapping, dict):
            parsed[doc_key] = {str(url): str(path) for url, path in mapping.items()}
    return parsed


class MappingStore:
    """Own the file-image map, the URL map, and the settings, and persist them together.

    Every mutation is followed by a flush unless it happens inside
    :meth:`batch`. A failed flush is logged and reported but never rolls
    back memory; the next successful save catches the file up.
    """

    def __init__(self, state_path: Path, vault: Vault, settings: Optional[Settings] = None) -> None:
        self.state_path = Path(state_path)
        self.vault = vault
        self.settings = settings or Settings()
        self.file_image_map: Dict[str, List[str]] = {}
        self.url_mapping: Dict[str, Dict[str, str]] = {}
        self.last_error: Optional[PersistenceError] = None
        self._batch_depth = 0
        self._dirty = False

    @classmethod
    def load(cls, state_path: Path, vault: Vault) -> "MappingStore":
        store = cls(state_path, vault)
        store.reload()
        return store

    # -- persistence -------------------------------------------------------

    def reload(self) -> None:
        """Replace in-memory state with the contents of the state file."""
        self.settings = Settings()
        self.file_image_map = {}
        self.url_mapping = {}
        if not self.state_path.exists():
            logger.debug("No state file at %s; starting empty", self.state_path)
            return
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Could not read state file %s (%s); starting empty", self.state_path, exc)
            return
        if not isinstance(data, dict):
            logger.error("State file %s does not hold an object; starting empty", self.state_path)
            return
        self.settings = Settings.from_dict(data)
        self.url_mapping = _parse_url_mapping(data.get("urlMapping"))
        try:
            self.file_image_map = _parse_file_image_map(data.get("fileImageMap"))
        except ValueError as exc:
            logger.error("Discarding unreadable fileImageMap in %s: %s", self.state_path, exc)
        logger.debug(
            "Loaded state for %d document(s) from %s",
            len(self.file_image_map),
            self.state_path,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = self.settings.to_dict()
        data["urlMapping"] = {key: dict(value) for key, value in self.url_mapping.items()}
        data["fileImageMap"] = {key: list(value) for key, value in self.file_image_map.items()}
        return data

    def save(self) -> None:
        """Write the whole state atomically; raises PersistenceError on failure."""
        try:
            payload = json.dumps(self.to_dict(), indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Could not serialise state: {exc}") from exc
        tmp_name = None
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".state-", dir=self.state_path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.state_path)
        except OSError as exc:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            raise PersistenceError(f"Could not write {self.state_path}: {exc}") from exc
        self._dirty = False
        self.last_error = None

    def flush(self) -> bool:
        """Save now unless batching; returns False when the save failed."""
        if self._batch_depth:
            return True
        try:
            self.save()
        except PersistenceError as exc:
            logger.error("Failed to persist image mappings: %s", exc)
            self.last_error = exc
            return False
        return True

    def _changed(self) -> bool:
        self._dirty = True
        return self.flush()

    @contextmanager
    def batch(self) -> Iterator[FlushResult]:
        """Apply several mutations and flush once when the block exits."""
        result = FlushResult()
        self._batch_depth += 1
        try:
            yield result
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._dirty:
                result.persisted = self.flush()
                result.error = None if result.persisted else self.last_error

    # -- queries -----------------------------------------------------------

    def tracked_documents(self) -> List[str]:
        return list(dict.fromkeys([*self.file_image_map, *self.url_mapping]))

    def files_for(self, doc_key: str) -> List[str]:
        return list(self.file_image_map.get(doc_key, []))

    def url_map_for(self, doc_key: str) -> Dict[str, str]:
        return dict(self.url_mapping.get(doc_key, {}))

    def local_to_remote(self, doc_key: str) -> Dict[str, str]:
        """Invert the URL map of a document into link target -> URL; later URLs win."""
        return {local: url for url, local in self.url_mapping.get(doc_key, {}).items()}

    def is_shared(self, path: str, doc_key: str) -> bool:
        """Return True when a document other than ``doc_key`` tracks ``path``."""
        target = normalize_path(path)
        for other_key, paths in self.file_image_map.items():
            if other_key == doc_key:
                continue
            if any(normalize_path(candidate) == target for candidate in paths):
                return True
        return False

    # -- mutations ---------------------------------------------------------

    def update_settings(self, **changes: Any) -> bool:
        known = {item.name for item in fields(Settings)}
        unknown = set(changes) - known
        if unknown:
            raise TypeError(f"Unknown settings: {', '.join(sorted(unknown))}")
        for name, value in changes.items():
            setattr(self.settings, name, value)
        return self._changed()

    def record_download(
        self,
        doc_key: str,
        url: str,
        local_path: str,
        target: Optional[str] = None,
    ) -> bool:
        """Track vault path ``local_path`` for ``doc_key`` and remember which URL produced it.

        ``target`` is the link text written into the document (default: the
        vault path); revert matches it literally.
        """
        paths = self.file_image_map.setdefault(doc_key, [])
        normalized = normalize_path(local_path)
        if not any(normalize_path(existing) == normalized for existing in paths):
            paths.append(local_path)
        self.url_mapping.setdefault(doc_key, {})[url] = local_path if target is None else target
        return self._changed()

    def remove_document(self, doc_key: str) -> bool:
        """Forget both mapping entries of a document; returns whether any existed."""
        had_files = self.file_image_map.pop(doc_key, None) is not None
        had_urls = self.url_mapping.pop(doc_key, None) is not None
        if had_files or had_urls:
            self._changed()
            return True
        return False

    def rename_document(self, old_key: str, new_key: str) -> bool:
        if old_key == new_key:
            return False
        moved = False
        if old_key in self.file_image_map:
            merged = self.file_image_map.pop(old_key) + self.file_image_map.get(new_key, [])
            self.file_image_map[new_key] = list(dict.fromkeys(merged))
            moved = True
        if old_key in self.url_mapping:
            mapping = self.url_mapping.get(new_key, {})
            mapping.update(self.url_mapping.pop(old_key))
            self.url_mapping[new_key] = mapping
            moved = True
        if moved:
            self._changed()
        return moved

    def reconcile(self, doc_key: str, live_local_paths: Iterable[str]) -> Dict[str, DownloadStatus]:
        """Fold local images found in the text into the file set and derive URL statuses.

        ``live_local_paths`` are vault paths of the local images the document
        currently embeds. A mapped URL is ``success`` when its link target resolves,
        relative to the document, to one of them; otherwise ``pending``.
        """
        confirmed: Dict[str, str] = {}
        for path in live_local_paths:
            normalized = normalize_path(path)
            if normalized and self.vault.exists(normalized):
                confirmed.setdefault(normalized, path)

        tracked = self.file_image_map.get(doc_key, [])
        known = {normalize_path(existing) for existing in tracked}
        additions = [path for normalized, path in confirmed.items() if normalized not in known]
        if additions:
            self.file_image_map[doc_key] = tracked + additions
            logger.debug("Tracking %d existing local image(s) for %s", len(additions), doc_key)
            self._changed()

        statuses: Dict[str, DownloadStatus] = {}
        for url, target in self.url_mapping.get(doc_key, {}).items():
            if resolve_local_target(target, doc_key) in confirmed:
                statuses[url] = DownloadStatus.SUCCESS
            else:
                statuses[url] = DownloadStatus.PENDING
        return statuses

    def _prune_paths(self, doc_key: str) -> List[str]:
        paths = self.file_image_map.get(doc_key, [])
        kept = [path for path in paths if self.vault.exists(path)]
        removed = [path for path in paths if path not in kept]
        if removed:
            self.file_image_map[doc_key] = kept
        return removed

    def prune_document(self, doc_key: str) -> List[str]:
        """Drop file-set entries of one document whose files have disappeared."""
        removed = self._prune_paths(doc_key)
        if removed:
            self._changed()
        return removed

    def prune_orphans(self) -> PruneReport:
        """Drop entries for missing documents and missing image files.

        Idempotent: a second run without filesystem changes mutates nothing.
        """
        report = PruneReport()
        for doc_key in self.tracked_documents():
            if not self.vault.exists(doc_key):
                self.file_image_map.pop(doc_key, None)
                self.url_mapping.pop(doc_key, None)
                report.removed_documents.append(doc_key)
                continue
            removed = self._prune_paths(doc_key)
            if removed:
                report.removed_paths[doc_key] = removed
        if report.changed:
            logger.info(
                "Pruned %d missing document(s) and %d missing image(s)",
                len(report.removed_documents),
                sum(len(paths) for paths in report.removed_paths.values()),
            )
            self._changed()
        return report
