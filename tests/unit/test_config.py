"""Tests for configuration loading, validation and migration."""

from __future__ import annotations

import json
import os
import stat

import pytest
from pydantic import ValidationError

from hometrack.config import (
    CONFIG_VERSION,
    HometrackConfig,
    SessionConfig,
    SyncConfig,
    load_config,
    save_config,
)


class TestDefaults:
    def test_default_values(self):
        config = HometrackConfig()

        assert config.config_version == CONFIG_VERSION
        assert config.sync.max_retries == 3
        assert config.sync.drain_debounce_seconds == 1.0
        assert config.sync.min_drain_interval_seconds == 2.0
        assert config.sync.periodic_interval_seconds == 30.0
        assert config.sync.collapse_duplicates is True
        assert config.session.timeout_seconds == 12.0
        assert config.session.grace_seconds == 5.0
        assert config.session.max_attempts == 5
        assert config.session.attempt_boundaries == [1.0, 3.0, 7.0, 11.0, 15.0]
        assert config.remote.connect_timeout == 5.0

    def test_invalid_retry_count_rejected(self):
        with pytest.raises(ValidationError):
            SyncConfig(max_retries=0)

    def test_boundaries_must_ascend(self):
        with pytest.raises(ValidationError):
            SessionConfig(attempt_boundaries=[3.0, 1.0])


class TestLoadConfig:
    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.json")
        assert config == HometrackConfig()

    def test_invalid_json_uses_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        assert load_config(path) == HometrackConfig()

    def test_invalid_values_use_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"config_version": 1, "sync": {"max_retries": -5}}))

        assert load_config(path).sync.max_retries == 3

    def test_partial_file_merges_with_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"config_version": 1, "sync": {"max_retries": 5}}))

        config = load_config(path)

        assert config.sync.max_retries == 5
        assert config.sync.periodic_interval_seconds == 30.0


class TestMigration:
    def test_older_file_is_upgraded_and_written_back(self, tmp_path, monkeypatch):
        """Registered steps run for older files and the result is persisted."""

        def rename_retries(data):
            data.setdefault("sync", {})["max_retries"] = data.pop("retries")
            return data

        monkeypatch.setattr("hometrack.config.CONFIG_VERSION", 2)
        monkeypatch.setattr("hometrack.config._MIGRATIONS", {2: rename_retries})
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"config_version": 1, "retries": 7}))

        config = load_config(path)

        assert config.sync.max_retries == 7
        persisted = json.loads(path.read_text())
        assert persisted["config_version"] == 2
        assert "retries" not in persisted

    def test_current_file_is_not_rewritten(self, tmp_path):
        path = tmp_path / "config.json"
        raw = json.dumps({"config_version": CONFIG_VERSION, "sync": {"max_retries": 4}})
        path.write_text(raw)

        assert load_config(path).sync.max_retries == 4
        assert path.read_text() == raw

    def test_newer_file_still_loads(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"config_version": CONFIG_VERSION + 1, "sync": {"max_retries": 6}}))

        assert load_config(path).sync.max_retries == 6

    def test_malformed_version_uses_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"config_version": "two", "sync": {"max_retries": 6}}))

        assert load_config(path) == HometrackConfig()


class TestSaveConfig:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        config = HometrackConfig()
        config.sync.max_retries = 4

        assert save_config(config, path) is True
        assert load_config(path).sync.max_retries == 4

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_saved_file_is_private(self, tmp_path):
        path = tmp_path / "config.json"
        save_config(HometrackConfig(), path)

        assert stat.S_IMODE(path.stat().st_mode) == 0o600
