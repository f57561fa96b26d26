"""Configuration loading helpers for the connection speed tracker."""

from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import yaml

MIB = 1024 * 1024


@dataclass
class PathsConfig:
    data_dir: Path
    logs_dir: Path


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    secret_key: str = "change-me"
    reverse_proxy_headers: bool = False


@dataclass
class ProbeConfig:
    payload_bytes: int = 5 * MIB
    upload_bytes: int = 2 * MIB
    upload_limit_bytes: int = 20 * MIB
    timeout_seconds: float = 60.0


@dataclass
class StoreConfig:
    history_limit: int = 100


@dataclass
class ClientConfig:
    # Remote tracker probed by the server-side agent; unset disables the agent.
    server_url: Optional[str] = None


@dataclass
class AutoTestConfig:
    enabled: bool = False
    interval_minutes: int = 30


@dataclass
class DashboardConfig:
    timezone: str = "UTC"


@dataclass
class ExportConfig:
    csv_name: str = "speedtests.csv"


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class AppConfig:
    root_dir: Path
    paths: PathsConfig
    web: WebConfig
    probe: ProbeConfig
    store: StoreConfig
    client: ClientConfig
    autotest: AutoTestConfig
    dashboard: DashboardConfig
    export: ExportConfig
    logging: LoggingConfig


def targets_local_server(server_url: str, web: WebConfig) -> bool:
    """True when ``server_url`` points at this process's own listener.

    Probing ourselves only measures loopback throughput, so the server-side
    agent refuses such a target.
    """

    parts = urlsplit(server_url)
    host = (parts.hostname or "").lower()
    port = parts.port or (443 if parts.scheme == "https" else 80)
    if port != web.port:
        return False

    local_names = {"", "localhost", "0.0.0.0", "::", web.host.lower()}
    local_names.update(name.lower() for name in (socket.gethostname(), socket.getfqdn()))
    if host in local_names:
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def _as_path(base: Path, maybe_path: Optional[str]) -> Path:
    if not maybe_path:
        raise ValueError("Path configuration entries cannot be empty")
    path = (base / maybe_path).resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load application configuration from YAML file."""

    root_dir = Path(path).resolve().parent if path else Path.cwd()
    source_path = Path(path) if path else root_dir / "config.yaml"
    if not source_path.exists():
        raise FileNotFoundError(f"Missing configuration file at {source_path}")

    with source_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    paths_data = data.get("paths", {})
    paths = PathsConfig(
        data_dir=_as_path(root_dir, paths_data.get("data_dir", "data")),
        logs_dir=_as_path(root_dir, paths_data.get("logs_dir", "logs")),
    )

    config = AppConfig(
        root_dir=root_dir,
        paths=paths,
        web=WebConfig(**data.get("web", {})),
        probe=ProbeConfig(**data.get("probe", {})),
        store=StoreConfig(**data.get("store", {})),
        client=ClientConfig(**data.get("client", {})),
        autotest=AutoTestConfig(**data.get("autotest", {})),
        dashboard=DashboardConfig(**data.get("dashboard", {})),
        export=ExportConfig(**data.get("export", {})),
        logging=LoggingConfig(**data.get("logging", {})),
    )

    if config.autotest.interval_minutes <= 0:
        raise ValueError("autotest.interval_minutes must be positive")
    if config.store.history_limit <= 0:
        raise ValueError("store.history_limit must be positive")

    return config
