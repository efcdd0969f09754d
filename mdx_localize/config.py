"""Configuration objects and constants for the image localizer."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger("mdx_localize")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0"
)
DEFAULT_ATTACHMENT_FOLDER = "attachments"
DEFAULT_STATE_FILENAME = ".mdx-localize.json"
DEFAULT_MIN_IMAGE_BYTES = 1024

VAULT_ENV_VAR = "MDX_LOCALIZE_VAULT"
STATE_ENV_VAR = "MDX_LOCALIZE_STATE"


@dataclass
class Settings:
    """User-facing settings persisted next to the image mappings."""

    custom_assets_dir: str = ""
    auto_delete_images: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Settings":
        custom_dir = data.get("customAssetsDir") or ""
        return cls(
            custom_assets_dir=str(custom_dir),
            auto_delete_images=bool(data.get("autoDeleteImages", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customAssetsDir": self.custom_assets_dir,
            "autoDeleteImages": self.auto_delete_images,
        }


@dataclass
class DownloadConfig:
    """Settings controlling how a single image fetch is performed and validated."""

    user_agent: str = DEFAULT_USER_AGENT
    accept: str = "*/*"
    # None means no timeout beyond what the transport imposes.
    timeout: Optional[float] = None
    min_image_bytes: int = DEFAULT_MIN_IMAGE_BYTES
    flag_text_responses: bool = True
    sniff_octet_stream: bool = False


@dataclass
class LocalizerConfig:
    """Top-level runtime settings for a localizer bound to one vault."""

    vault_root: Path
    state_path: Optional[Path] = None
    attachment_folder: str = DEFAULT_ATTACHMENT_FOLDER
    download: DownloadConfig = field(default_factory=DownloadConfig)

    def __post_init__(self) -> None:
        self.vault_root = Path(self.vault_root).expanduser()
        if self.state_path is None:
            self.state_path = self.vault_root / DEFAULT_STATE_FILENAME
        else:
            self.state_path = Path(self.state_path).expanduser()


def _resolve_env_path(env_var: str, must_exist: bool) -> Optional[Path]:
    override = os.getenv(env_var)
    if not override:
        return None
    override_path = Path(override).expanduser()
    if must_exist and not override_path.exists():
        logger.warning(
            "%s is set to %s but the path does not exist; ignoring it",
            env_var,
            override_path,
        )
        return None
    logger.debug("%s override detected at %s", env_var, override_path)
    return override_path


def resolve_vault_root(default: Optional[Path] = None) -> Path:
    """Return the vault root from the environment, falling back to ``default`` or cwd."""
    env_root = _resolve_env_path(VAULT_ENV_VAR, must_exist=True)
    if env_root:
        return env_root
    return Path(default) if default is not None else Path.cwd()


def resolve_state_path(vault_root: Path) -> Path:
    """Return the state file location, honouring the environment override."""
    env_state = _resolve_env_path(STATE_ENV_VAR, must_exist=False)
    if env_state:
        return env_state
    return Path(vault_root) / DEFAULT_STATE_FILENAME
