"""Tests for application wiring."""

import pytest
import yaml

from speedtracker import ApplicationContext, bootstrap
from speedtracker.measurements.models import MeasurementResult


def _write_config(config, **sections):
    config_path = config.root_dir / "config.yaml"
    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    data.update(sections)
    config_path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(config_path)


def test_bootstrap_wires_shared_state(config):
    context = bootstrap(_write_config(config), setup_logging=False)
    try:
        assert context.store.history_limit == 100
        assert context.client.server_url == "http://tracker.test"
        assert context.client.upload_bytes == config.probe.upload_bytes
        assert not context.autotest.enabled

        http = context.web_app.test_client()
        assert http.get("/api/speedtests").get_json() == []
        assert len(http.get("/api/payload").get_data()) == config.probe.payload_bytes
    finally:
        context.shutdown()


def test_start_honours_autotest_flag(config):
    context = bootstrap(_write_config(config), setup_logging=False)
    context.config.autotest.enabled = True
    try:
        context.start()
        assert context.autotest.enabled
        assert context.autotest.scheduler.running
    finally:
        context.shutdown()


class TestServerAgent:
    def test_without_server_url_the_server_runs_no_tests(self, config):
        path = _write_config(config, client={"server_url": None}, autotest={"enabled": True})
        context = bootstrap(path, setup_logging=False)
        try:
            context.start()
            assert context.runner is None
            assert context.autotest is None

            http = context.web_app.test_client()
            assert http.post("/api/run").status_code == 503
            assert http.post("/api/autotest", json={"enabled": True}).status_code == 503
            assert http.get("/api/status").get_json()["auto_test_enabled"] is False
        finally:
            context.shutdown()

    @pytest.mark.parametrize(
        "server_url",
        ["http://127.0.0.1:8000", "http://localhost:8000/", "http://[::1]:8000"],
    )
    def test_agent_refuses_to_probe_its_own_listener(self, config, server_url):
        config.client.server_url = server_url

        with pytest.raises(ValueError):
            ApplicationContext(config, setup_logging=False)

    def test_port_override_applies_before_the_agent_is_built(self, config):
        path = _write_config(config, client={"server_url": "http://127.0.0.1:9000"})

        with pytest.raises(ValueError):
            bootstrap(path, setup_logging=False, port=9000)

        context = bootstrap(path, setup_logging=False, host="127.0.0.1", port=9100)
        try:
            assert context.config.web.port == 9100
            assert context.config.web.host == "127.0.0.1"
            assert context.client.server_url == "http://127.0.0.1:9000"
        finally:
            context.shutdown()

    def test_agent_results_land_in_the_local_store(self, config):
        context = bootstrap(_write_config(config), setup_logging=False)
        try:
            record = context.client.sink(MeasurementResult(download_mbps=40.0, upload_mbps=32.0, ping_ms=20.0))

            assert [row.id for row in context.store.list_recent()] == [record["id"]]
            snapshot = config.paths.data_dir / config.export.csv_name
            lines = snapshot.read_text(encoding="utf-8").strip().splitlines()
            assert lines[0].startswith("id,timestamp")
            assert len(lines) == 2
        finally:
            context.shutdown()
