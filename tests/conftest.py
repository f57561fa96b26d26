"""Shared fixtures: on-disk config, database, Flask app and a requests adapter."""

from __future__ import annotations

import json
from typing import Iterable
from urllib.parse import urlsplit

import pytest
import requests
import yaml

from speedtracker.config import AppConfig, load_config
from speedtracker.db import init_db
from speedtracker.exporter import CSVExporter
from speedtracker.store import ResultStore
from speedtracker.web.app import create_web_app

MIB = 1024 * 1024


@pytest.fixture
def config(tmp_path) -> AppConfig:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        yaml.safe_dump(
            {
                "paths": {"data_dir": "data", "logs_dir": "logs"},
                "probe": {
                    "payload_bytes": MIB,
                    "upload_bytes": MIB // 2,
                    "upload_limit_bytes": 2 * MIB,
                    "timeout_seconds": 5,
                },
                "client": {"server_url": "http://tracker.test"},
                "autotest": {"enabled": False, "interval_minutes": 30},
            }
        ),
        encoding="utf-8",
    )
    return load_config(str(config_file))


@pytest.fixture
def session_factory(config):
    factory = init_db(config.paths.data_dir)
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def store(session_factory, config) -> ResultStore:
    return ResultStore(session_factory, history_limit=config.store.history_limit)


@pytest.fixture
def exporter(config, store) -> CSVExporter:
    return CSVExporter(config, store)


@pytest.fixture
def app(config, store, exporter):
    flask_app = create_web_app(config=config, store=store, exporter=exporter)
    flask_app.testing = True
    return flask_app


@pytest.fixture
def http(app):
    return app.test_client()


class AdapterResponse:
    """The slice of requests.Response the speed test client relies on."""

    def __init__(self, status_code: int, content: bytes, url: str):
        self.status_code = status_code
        self.content = content
        self.url = url

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}", response=self)

    def json(self):
        return json.loads(self.content)


class FlaskSession:
    """Routes SpeedTestClient requests into a Flask test client."""

    def __init__(self, test_client):
        self.test_client = test_client
        self.calls = []

    def request(self, method, url, headers=None, timeout=None, data=None, json=None):
        path = urlsplit(url).path
        self.calls.append((method, path, headers))
        kwargs = {"method": method, "headers": headers or {}}
        if data is not None:
            kwargs["data"] = data
        if json is not None:
            kwargs["json"] = json
        response = self.test_client.open(path, **kwargs)
        return AdapterResponse(response.status_code, response.get_data(), url)


class ScriptedClock:
    """Returns the given readings in order, one per call."""

    def __init__(self, readings: Iterable[float]):
        self._readings = iter(readings)

    def __call__(self) -> float:
        return next(self._readings)


@pytest.fixture
def flask_session(http) -> FlaskSession:
    return FlaskSession(http)
