"""Tests for speedtracker.config."""

import pytest

from speedtracker.config import MIB, WebConfig, load_config, targets_local_server


def test_defaults_fill_missing_sections(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("", encoding="utf-8")

    config = load_config(str(config_file))

    assert config.probe.payload_bytes == 5 * MIB
    assert config.probe.upload_bytes == 2 * MIB
    assert config.probe.upload_limit_bytes == 20 * MIB
    assert config.store.history_limit == 100
    assert config.autotest.interval_minutes == 30
    assert config.autotest.enabled is False
    assert config.client.server_url is None
    assert config.paths.data_dir == (tmp_path / "data").resolve()
    assert config.paths.data_dir.is_dir()
    assert config.paths.logs_dir.is_dir()


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "absent.yaml"))


def test_non_positive_interval_rejected(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("autotest:\n  interval_minutes: 0\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(str(config_file))


def test_unknown_keys_are_errors(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("probe:\n  payload_size: 10\n", encoding="utf-8")

    with pytest.raises(TypeError):
        load_config(str(config_file))


@pytest.mark.parametrize(
    "server_url, expected",
    [
        ("http://127.0.0.1:8000", True),
        ("http://localhost:8000/", True),
        ("http://[::1]:8000", True),
        ("http://0.0.0.0:8000", True),
        ("http://127.0.0.1:9000", False),
        ("http://tracker.example.net:8000", False),
        ("https://tracker.example.net", False),
    ],
)
def test_targets_local_server(server_url, expected):
    assert targets_local_server(server_url, WebConfig(host="0.0.0.0", port=8000)) is expected


def test_default_port_follows_scheme():
    assert targets_local_server("http://localhost", WebConfig(port=80))
    assert not targets_local_server("https://localhost", WebConfig(port=80))
