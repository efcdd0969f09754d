"""Interfaces the localizer core consumes from its host environment."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Protocol


class Vault(Protocol):
    """Document and file access rooted at one storage directory.

    All paths are vault-relative, ``/``-separated strings.
    """

    def exists(self, path: str) -> bool: ...

    def read_text(self, path: str) -> str: ...

    def write_text(self, path: str, text: str) -> None: ...

    def write_binary(self, path: str, data: bytes) -> None: ...

    def delete(self, path: str) -> None: ...

    def ensure_dir(self, path: str) -> None: ...

    def available_attachment_path(self, filename: str, doc_key: str) -> str: ...


class RefererPrompt(Protocol):
    """Ask the user for a referer; return None to cancel the request."""

    async def __call__(self, doc_key: str, suggestion: str) -> Optional[str]: ...


class Notifier(Protocol):
    def notify(self, message: str, level: int = logging.INFO) -> None: ...


class LoggingNotifier:
    """Route end-user notices to the ``mdx_localize.notify`` logger."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("mdx_localize.notify")

    def notify(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, message)


class PendingRefererPrompt:
    """Referer prompt whose answers are supplied later through :meth:`resolve`.

    Each request for a document suspends on a future until the host calls
    ``resolve(doc_key, value)``; resolving with None cancels it.
    """

    def __init__(self) -> None:
        self._pending: Dict[str, asyncio.Future] = {}
        self._suggestions: Dict[str, str] = {}

    async def __call__(self, doc_key: str, suggestion: str) -> Optional[str]:
        future = asyncio.get_running_loop().create_future()
        self._pending[doc_key] = future
        self._suggestions[doc_key] = suggestion
        try:
            return await future
        finally:
            self._pending.pop(doc_key, None)
            self._suggestions.pop(doc_key, None)

    def pending(self) -> List[str]:
        return list(self._pending)

    def suggestion(self, doc_key: str) -> str:
        return self._suggestions.get(doc_key, "")

    def resolve(self, doc_key: str, referer: Optional[str]) -> bool:
        """Answer an outstanding prompt; returns False when none is waiting."""
        future = self._pending.get(doc_key)
        if future is None or future.done():
            return False
        future.set_result(referer)
        return True
