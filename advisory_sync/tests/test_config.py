"""
Tests for settings loading.

These tests validate:
- Defaults when no settings file exists
- YAML values and environment overrides
- Type coercion and rejection of unknown or invalid settings
"""
import dataclasses
from pathlib import Path

import pytest

from config import SyncConfig, load_config
from errors import ConfigError


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(str(tmp_path / "missing.yaml"), environ={})

    assert config == SyncConfig()
    assert config.store_name == "cert.duckdb"
    assert config.retry_attempts == 0


def test_yaml_values_override_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "feed_dir: /srv/cert-data\n"
        "port: 873\n"
        "mirror_delete: false\n"
        "feed_name: Test Feed\n"
    )

    config = load_config(str(path), environ={})

    assert config.feed_dir == "/srv/cert-data"
    assert config.port == 873
    assert config.mirror_delete is False
    assert config.feed_name == "Test Feed"


def test_environment_overrides_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("port: 873\n")

    config = load_config(str(path), environ={
        "ADVISORY_SYNC_PORT": "2222",
        "ADVISORY_SYNC_SYSLOG": "no",
        "ADVISORY_SYNC_RETRY_BASE_SECONDS": "0.5",
    })

    assert config.port == 2222
    assert config.syslog is False
    assert config.retry_base_seconds == 0.5


def test_unknown_key_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("feed_dir: /srv\nbogus_setting: 1\n")

    with pytest.raises(ConfigError, match="bogus_setting"):
        load_config(str(path), environ={})


def test_non_mapping_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigError):
        load_config(str(path), environ={})


def test_invalid_values_rejected(tmp_path):
    with pytest.raises(ConfigError, match="port"):
        load_config(str(tmp_path / "missing.yaml"), environ={"ADVISORY_SYNC_PORT": "ssh"})

    with pytest.raises(ConfigError, match="enabled"):
        load_config(str(tmp_path / "missing.yaml"), environ={"ADVISORY_SYNC_ENABLED": "maybe"})


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")

    assert load_config(str(path), environ={}) == SyncConfig()


def test_config_is_immutable():
    config = SyncConfig()

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.port = 22

    changed = config.replace(port=22)
    assert changed.port == 22
    assert config.port == 24


def test_derived_paths():
    config = SyncConfig(feed_dir="/data/cert", log_dir="/logs")

    assert config.store_path == Path("/data/cert/cert.duckdb")
    assert config.private_path == Path("/data/cert/private")
    assert config.lock_path.parent == config.private_path
    assert config.last_sync_path == Path("/data/cert/private/last-sync")
    assert config.transport_marker_path == Path("/data/cert/private/transport-incomplete")
    assert config.feed_version_path == Path("/data/cert/timestamp")
    assert config.log_path == Path("/logs/advisory-sync.log")
