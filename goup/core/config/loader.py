"""
Configuration loader — resolves where goup keeps its files and where it
fetches releases from.

Sources, lowest to highest precedence:

    1. Built-in defaults (go.dev catalog, ``$GOPATH/goup`` or ``~/.go/goup``)
    2. YAML file: ``GOUP_CONFIG`` if set, else ``<root>/config.yml``
    3. Environment: GOUP_ROOT, GOUP_INDEX_URL, GOUP_DOWNLOAD_URL, GOUP_TARGET
    4. Explicit ``root`` argument (the CLI's ``--root``)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yml"

_URL_SCHEMES = ("http", "https", "file")

DEFAULT_INDEX_URL = "https://go.dev/dl/?mode=json"
DEFAULT_DOWNLOAD_URL = "https://go.dev/dl/"

# Environment variable → config key
_ENV_OVERRIDES: dict[str, str] = {
    "GOUP_ROOT": "root",
    "GOUP_INDEX_URL": "index_url",
    "GOUP_DOWNLOAD_URL": "download_base_url",
    "GOUP_TARGET": "target",
}


class ConfigError(Exception):
    """Raised when goup configuration is invalid or unreadable."""

    exit_code = 8


class GoupConfig(BaseModel):
    """Validated runtime configuration."""

    root: Path
    index_url: str = DEFAULT_INDEX_URL
    download_base_url: str = DEFAULT_DOWNLOAD_URL
    include_all: bool = False
    timeout: float = 30.0
    target: str | None = None

    @field_validator("index_url", "download_base_url")
    @classmethod
    def check_url(cls, v: str) -> str:
        parts = urlsplit(v.strip())
        if parts.scheme not in _URL_SCHEMES:
            raise ValueError(f"unsupported URL {v!r} (expected http, https or file)")
        if parts.scheme != "file" and not parts.netloc:
            raise ValueError(f"URL {v!r} has no host")
        return v.strip()

    @property
    def catalog_url(self) -> str:
        """Index URL, widened to archived releases when ``include_all`` is set."""
        if self.include_all and "include=all" not in self.index_url:
            sep = "&" if "?" in self.index_url else "?"
            return f"{self.index_url}{sep}include=all"
        return self.index_url


def default_root() -> Path:
    """The managed directory used when nothing else is configured.

    ``$GOPATH/goup`` when GOPATH is set, otherwise ``~/.go/goup``.
    """
    gopath = os.environ.get("GOPATH")
    if gopath:
        return Path(gopath).expanduser() / "goup"
    return Path.home() / ".go" / "goup"


def load_config(root: Path | None = None, path: Path | None = None) -> GoupConfig:
    """Load and validate configuration.

    Args:
        root: Explicit managed root (wins over everything).
        path: Explicit config file. If None, uses GOUP_CONFIG or
            ``<root>/config.yml`` when present.

    Returns:
        Validated GoupConfig.

    Raises:
        ConfigError: If the file is unreadable or invalid.
    """
    env_root = os.environ.get("GOUP_ROOT")
    base_root = root or (Path(env_root).expanduser() if env_root else default_root())

    if path is None:
        env_path = os.environ.get("GOUP_CONFIG")
        path = Path(env_path).expanduser() if env_path else base_root / CONFIG_FILE

    data: dict[str, Any] = {"root": str(base_root)}
    data.update(_read_yaml(path))

    for env_key, key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_key)
        if value:
            data[key] = value

    if root is not None:
        data["root"] = str(root)

    try:
        config = GoupConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid goup configuration: {e}") from e

    config.root = config.root.expanduser().resolve()
    logger.debug("Configuration: root=%s index=%s", config.root, config.catalog_url)
    return config


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping; a missing file is an empty mapping."""
    if not path.is_file():
        return {}

    logger.debug("Loading config from %s", path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data
