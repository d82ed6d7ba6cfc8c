"""Tests for config.py — AssetKeeperConfig, TOML loading, env and CLI overrides."""

from datetime import timedelta
from pathlib import Path

import pytest

from assetkeeper.config import (
    CONFIG_FILENAME,
    AssetKeeperConfig,
    load_config,
    merge_cli_overrides,
)
from assetkeeper.content.models import ContentType, Upload
from assetkeeper.errors import ValidationError
from assetkeeper.services import build_services

_ENV_VARS = (
    "ASSETKEEPER_DATA_DIR",
    "ASSETKEEPER_BLOB_DIR",
    "ASSETKEEPER_CLEANUP_BASE_DELAY",
    "ASSETKEEPER_CLEANUP_MAX_DELAY",
    "ASSETKEEPER_CLEANUP_MAX_ATTEMPTS",
    "ASSETKEEPER_CLEANUP_POLL_INTERVAL",
    "ASSETKEEPER_ORPHAN_AGE_HOURS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Remove env vars that _apply_env_vars reads so tests see TOML values."""
    for key in _ENV_VARS:
        monkeypatch.delenv(key, raising=False)


class TestDefaults:
    def test_storage(self):
        cfg = AssetKeeperConfig()
        assert cfg.storage.data_path == Path("./data")
        assert cfg.storage.blob_path == Path("./data") / "blobs"

    def test_cleanup(self):
        policy = AssetKeeperConfig().cleanup.to_retry_policy()
        assert policy.base_delay_seconds == 2.0
        assert policy.max_attempts == 8

    def test_reconcile(self):
        assert AssetKeeperConfig().reconcile.orphan_age == timedelta(hours=24)


class TestLoadConfig:
    def test_load_from_explicit_path(self, tmp_path):
        toml_path = tmp_path / CONFIG_FILENAME
        toml_path.write_text(
            '[storage]\ndata_dir = "/srv/cms"\n\n[cleanup]\nmax_attempts = 3\n'
        )
        cfg = load_config(toml_path)
        assert cfg.storage.data_dir == "/srv/cms"
        assert cfg.cleanup.max_attempts == 3
        assert cfg.cleanup.base_delay_seconds == 2.0

    def test_load_missing_path_returns_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "nonexistent.toml")
        assert cfg.storage.data_dir == "./data"

    def test_load_searches_cwd(self, tmp_path, monkeypatch):
        (tmp_path / CONFIG_FILENAME).write_text("[reconcile]\norphan_age_hours = 6\n")
        monkeypatch.chdir(tmp_path)
        assert load_config().reconcile.orphan_age == timedelta(hours=6)

    def test_invalid_toml_returns_defaults(self, tmp_path):
        toml_path = tmp_path / CONFIG_FILENAME
        toml_path.write_text("[storage\nbroken")
        assert load_config(toml_path).storage.data_dir == "./data"


class TestEnvVars:
    def test_env_overrides_toml(self, tmp_path, monkeypatch):
        toml_path = tmp_path / CONFIG_FILENAME
        toml_path.write_text('[storage]\ndata_dir = "/from/toml"\n')
        monkeypatch.setenv("ASSETKEEPER_DATA_DIR", "/from/env")
        assert load_config(toml_path).storage.data_dir == "/from/env"

    def test_numeric_env_coerced(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ASSETKEEPER_CLEANUP_MAX_ATTEMPTS", "12")
        monkeypatch.setenv("ASSETKEEPER_CLEANUP_POLL_INTERVAL", "0.5")
        cfg = load_config(tmp_path / "nonexistent.toml")
        assert cfg.cleanup.max_attempts == 12
        assert cfg.cleanup.poll_interval_seconds == 0.5


class TestMergeCliOverrides:
    def test_none_values_ignored(self):
        cfg = merge_cli_overrides(AssetKeeperConfig(), data_dir=None, max_attempts=None)
        assert cfg == AssetKeeperConfig()

    def test_overrides_applied(self):
        cfg = merge_cli_overrides(
            AssetKeeperConfig(), data_dir="/tmp/x", max_attempts=2, orphan_age_hours=1
        )
        assert cfg.storage.data_dir == "/tmp/x"
        assert cfg.cleanup.max_attempts == 2
        assert cfg.reconcile.orphan_age_hours == 1

    def test_unknown_keys_ignored(self):
        assert merge_cli_overrides(AssetKeeperConfig(), verbose=True) == AssetKeeperConfig()


class TestBuildServices:
    def test_wires_file_backed_stores(self, tmp_path):
        cfg = merge_cli_overrides(AssetKeeperConfig(), data_dir=str(tmp_path))
        services = build_services(cfg)

        record = services.coordinator.create_content(
            ContentType.NEWS,
            {"title": "Rains arrive"},
            {"image": Upload.from_bytes(b"img", media_type="image/jpeg")},
        )

        assert (tmp_path / "blobs").is_dir()
        assert services.repository.get(record.id).title == "Rains arrive"
        assert services.blob_store.exists(record.slots["image"].blob_id)
        assert services.cleanup_worker().running is False

    def test_slot_limits_from_config(self, tmp_path):
        cfg = AssetKeeperConfig.model_validate(
            {"storage": {"data_dir": str(tmp_path)}, "slots": {"image_max_bytes": 2}}
        )
        services = build_services(cfg)
        with pytest.raises(ValidationError, match="limit is 2"):
            services.coordinator.create_content(
                ContentType.NEWS,
                {"title": "Too big"},
                {"image": Upload.from_bytes(b"123", media_type="image/jpeg")},
            )
        assert services.blob_store.list_blobs() == ()
