from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pytest

from mdx_localize.errors import DownloadError
from mdx_localize.models import DownloadedImage
from mdx_localize.orchestrator import ImageLocalizer
from mdx_localize.store import MappingStore
from mdx_localize.vault import LocalVault

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 2048


class FakeDownloader:
    """Serve canned results per URL and record every fetch."""

    def __init__(self, results: Optional[Dict[str, Union[DownloadedImage, DownloadError]]] = None) -> None:
        self.results = results or {}
        self.calls: List[Tuple[str, Optional[str]]] = []

    def add_image(self, url: str, extension: str = ".png", data: bytes = PNG_BYTES) -> None:
        self.results[url] = DownloadedImage(url=url, data=data, extension=extension, content_type="image/png")

    def add_failure(self, url: str, error: DownloadError) -> None:
        self.results[url] = error

    async def fetch(self, url: str, referer: Optional[str] = None) -> DownloadedImage:
        self.calls.append((url, referer))
        result = self.results.get(url)
        if result is None:
            raise DownloadError(url, f"no canned response for {url}")
        if isinstance(result, DownloadError):
            raise result
        return result


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: List[Tuple[int, str]] = []

    def notify(self, message: str, level: int = logging.INFO) -> None:
        self.messages.append((level, message))


@pytest.fixture
def vault_root(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def vault(vault_root: Path) -> LocalVault:
    return LocalVault(vault_root)


@pytest.fixture
def store(vault: LocalVault, tmp_path: Path) -> MappingStore:
    return MappingStore.load(tmp_path / "state.json", vault)


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def localizer(vault: LocalVault, store: MappingStore, downloader: FakeDownloader, notifier: RecordingNotifier) -> ImageLocalizer:
    return ImageLocalizer(vault=vault, store=store, downloader=downloader, notifier=notifier)


def write_note(root: Path, key: str, text: str) -> Path:
    path = root / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def write_asset(root: Path, key: str, data: bytes = PNG_BYTES) -> Path:
    path = root / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path
