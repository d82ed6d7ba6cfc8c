"""Unified configuration loaded from .assetkeeper.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, Field

from assetkeeper.content.slots import MIB, SlotPolicy, default_slot_rules
from assetkeeper.lifecycle.queue import RetryPolicy

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".assetkeeper.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
    Path.home() / ".config" / "assetkeeper",
]


class StorageConfig(BaseModel):
    """[storage] section."""

    data_dir: str = "./data"
    blob_dir: str = "blobs"
    records_file: str = ".assetkeeper-records.json"
    queue_file: str = ".assetkeeper-cleanup.json"

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    @property
    def blob_path(self) -> Path:
        return self.data_path / self.blob_dir


class CleanupConfig(BaseModel):
    """[cleanup] section."""

    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 3600.0
    max_attempts: int = 8
    poll_interval_seconds: float = 5.0

    def to_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            base_delay_seconds=self.base_delay_seconds,
            max_delay_seconds=self.max_delay_seconds,
            max_attempts=self.max_attempts,
        )


class ReconcileConfig(BaseModel):
    """[reconcile] section."""

    orphan_age_hours: float = 24.0

    @property
    def orphan_age(self) -> timedelta:
        return timedelta(hours=self.orphan_age_hours)


class SlotsConfig(BaseModel):
    """[slots] section — upload size ceilings per slot."""

    image_max_bytes: int = 10 * MIB
    thumbnail_max_bytes: int = 10 * MIB
    pdf_max_bytes: int = 10 * MIB
    media_max_bytes: int = 100 * MIB

    def to_slot_policy(self) -> SlotPolicy:
        return SlotPolicy(
            slots=default_slot_rules(
                image_max_bytes=self.image_max_bytes,
                thumbnail_max_bytes=self.thumbnail_max_bytes,
                pdf_max_bytes=self.pdf_max_bytes,
                media_max_bytes=self.media_max_bytes,
            )
        )


class AssetKeeperConfig(BaseModel):
    """Top-level configuration model."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)
    slots: SlotsConfig = Field(default_factory=SlotsConfig)


def load_config(path: str | Path | None = None) -> AssetKeeperConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .assetkeeper.toml in CWD
    3. ~/.config/assetkeeper/.assetkeeper.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged AssetKeeperConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break

    config = AssetKeeperConfig.model_validate(data) if data else AssetKeeperConfig()
    return _apply_env_vars(config)


def merge_cli_overrides(config: AssetKeeperConfig, **cli_kwargs: object) -> AssetKeeperConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).

    Args:
        config: Base config.
        **cli_kwargs: CLI flag values (``data_dir``, ``max_attempts``,
            ``orphan_age_hours``). Unknown keys are ignored.

    Returns:
        Updated config with CLI overrides applied.
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "data_dir": ("storage", "data_dir"),
        "max_attempts": ("cleanup", "max_attempts"),
        "orphan_age_hours": ("reconcile", "orphan_age_hours"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    return AssetKeeperConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: AssetKeeperConfig) -> AssetKeeperConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "ASSETKEEPER_DATA_DIR": ("storage", "data_dir"),
        "ASSETKEEPER_BLOB_DIR": ("storage", "blob_dir"),
        "ASSETKEEPER_CLEANUP_BASE_DELAY": ("cleanup", "base_delay_seconds"),
        "ASSETKEEPER_CLEANUP_MAX_DELAY": ("cleanup", "max_delay_seconds"),
        "ASSETKEEPER_CLEANUP_MAX_ATTEMPTS": ("cleanup", "max_attempts"),
        "ASSETKEEPER_CLEANUP_POLL_INTERVAL": ("cleanup", "poll_interval_seconds"),
        "ASSETKEEPER_ORPHAN_AGE_HOURS": ("reconcile", "orphan_age_hours"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    # Pydantic coerces the numeric strings
    return AssetKeeperConfig.model_validate(data)
