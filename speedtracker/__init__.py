"""Application bootstrap helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .config import AppConfig, load_config, targets_local_server
from .db import init_db
from .exporter import CSVExporter
from .logging_setup import configure_logging
from .measurements.client import SpeedTestClient
from .measurements.models import MeasurementResult
from .runner import SpeedTestRunner
from .scheduler import AutoTestScheduler
from .store import ResultStore
from .web.app import create_web_app

LOGGER = logging.getLogger(__name__)


class ApplicationContext:
    """Holds shared singletons for the service.

    The database handle and the download payload are created once here and
    live until ``shutdown``; a restart builds fresh ones.

    Dashboard tests run in the visitor's browser. The server-side agent
    (runner plus auto-test) exists only when ``client.server_url`` names a
    remote tracker; it measures this host's link to that tracker and keeps
    the results in the local store.
    """

    def __init__(self, config: AppConfig, setup_logging: bool = True):
        server_url = config.client.server_url
        if server_url and targets_local_server(server_url, config.web):
            raise ValueError(f"client.server_url {server_url} is this server; the agent would only measure loopback")

        self.config = config
        if setup_logging:
            configure_logging(config)
        self.Session = init_db(config.paths.data_dir)
        self.store = ResultStore(self.Session, history_limit=config.store.history_limit)
        self.exporter = CSVExporter(config, self.store)

        self.client: Optional[SpeedTestClient] = None
        self.runner: Optional[SpeedTestRunner] = None
        self.autotest: Optional[AutoTestScheduler] = None
        if server_url:
            self.client = SpeedTestClient(
                server_url,
                upload_bytes=config.probe.upload_bytes,
                timeout=config.probe.timeout_seconds,
                sink=self.record_result,
            )
            self.runner = SpeedTestRunner(self.client)
            self.autotest = AutoTestScheduler(config, self.runner)
        elif config.autotest.enabled:
            LOGGER.warning("autotest.enabled is ignored without client.server_url; use the dashboard auto-test")

        self.web_app = create_web_app(
            config=config,
            store=self.store,
            exporter=self.exporter,
            runner=self.runner,
            autotest=self.autotest,
        )

    def record_result(self, result: MeasurementResult) -> Dict[str, Any]:
        record = self.store.create(result)
        self.exporter.refresh_snapshot()
        return self.store.to_dict(record)

    def start(self) -> None:
        if self.autotest is None:
            return
        if self.config.autotest.enabled:
            self.autotest.enable()
        self.autotest.start()

    def shutdown(self) -> None:
        if self.autotest is not None:
            self.autotest.shutdown()
        self.Session.kw["bind"].dispose()
        LOGGER.info("Application context shut down")


def bootstrap(
    config_path: Optional[str] = None,
    setup_logging: bool = True,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> ApplicationContext:
    """Load configuration, apply listener overrides and wire dependencies."""

    config_file = Path(config_path).resolve() if config_path else None
    config = load_config(str(config_file)) if config_file else load_config()
    if host:
        config.web.host = host
    if port:
        config.web.port = port
    return ApplicationContext(config, setup_logging=setup_logging)
