"""
Configuration loader — reads codecforge.yml into a BuildConfig.

Reads YAML, validates it against the Pydantic schema, and returns a typed
config with every relative path resolved against the directory holding
the file. A missing file is not an error: defaults rooted at the current
directory apply.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from codecforge.core.errors import CodecForgeError
from codecforge.core.models.diagnostic import Diagnostic

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "codecforge.yml"


class ConfigError(CodecForgeError):
    """Raised when codecforge.yml is invalid or unreadable."""

    gate = "parse-time"

    def __init__(self, message: str, fix: str = ""):
        diag = Diagnostic(
            what=message,
            root_cause=message,
            fix=fix or f"Correct {CONFIG_FILE} or pass a different --config",
        )
        diag.failed("configuration", message)
        super().__init__(diag)


class BuildConfig(BaseModel):
    """Run configuration. Paths are relative to ``root`` unless absolute."""

    root: Path = Field(default_factory=Path.cwd)

    build_root: str = "build"
    versions_file: str = "versions.properties"
    platforms_dir: str = "platforms"
    catalog_file: str | None = None

    jobs: int | None = Field(default=None, ge=1)    # None = host core count
    timeout: float = Field(default=3600.0, gt=0)    # seconds per target, all steps together
    emulated_timeout_factor: float = Field(default=4.0, ge=1)
    failure_mode: Literal["strict", "triage"] = "strict"

    fetch_retries: int = Field(default=3, ge=0)
    fetch_backoff: float = Field(default=2.0, ge=0)

    def resolve(self, value: str) -> Path:
        """Resolve a configured path against the config root."""
        path = Path(value).expanduser()
        return path if path.is_absolute() else self.root / path

    @property
    def build_root_path(self) -> Path:
        return self.resolve(self.build_root)

    @property
    def versions_path(self) -> Path:
        return self.resolve(self.versions_file)

    @property
    def platforms_path(self) -> Path:
        return self.resolve(self.platforms_dir)

    @property
    def catalog_path(self) -> Path | None:
        return self.resolve(self.catalog_file) if self.catalog_file else None

    @property
    def worker_count(self) -> int:
        return self.jobs or os.cpu_count() or 1


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for codecforge.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to codecforge.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None) -> BuildConfig:
    """Load and validate the build configuration.

    Args:
        path: Explicit path to codecforge.yml. If None, searches upward
            and falls back to defaults when nothing is found.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None:
        path = find_config_file()
        if path is None:
            logger.debug("No %s found, using defaults", CONFIG_FILE)
            return BuildConfig()
    elif not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading build config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "codecforge" key or be flat
    config_data = data.get("codecforge", data)
    if not isinstance(config_data, dict):
        raise ConfigError(f"Expected 'codecforge' to be a mapping in {path}")

    try:
        config = BuildConfig.model_validate({**config_data, "root": path.parent.resolve()})
    except ValidationError as e:
        raise ConfigError(f"Invalid build configuration in {path}: {e}") from e

    logger.info("Loaded build config from %s (build_root=%s)", path, config.build_root_path)
    return config
