"""Command-line speed test client.

Runs the probe sequence against a tracker server and records the result
there. With ``--auto`` it keeps testing on a fixed period until interrupted.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time

from speedtracker.config import load_config
from speedtracker.logging_setup import configure_logging
from speedtracker.measurements.client import SpeedTestClient
from speedtracker.runner import SpeedTestRunner
from speedtracker.scheduler import AutoTestScheduler

LOGGER = logging.getLogger("speedtracker.measure")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Measure connection speed against a tracker server")
    parser.add_argument("--config", default="config.yaml", help="Path to configuration file")
    parser.add_argument("--server", default=None, help="Override the server base URL")
    parser.add_argument("--auto", action="store_true", help="Repeat the test every interval until interrupted")
    parser.add_argument("--interval", type=int, default=None, help="Override the auto-test interval in minutes")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    config = load_config(args.config)
    if args.interval is not None:
        if args.interval <= 0:
            print("--interval must be positive", file=sys.stderr)
            return 2
        config.autotest.interval_minutes = args.interval
    server_url = args.server or config.client.server_url
    if not server_url:
        print("No tracker server given; pass --server or set client.server_url", file=sys.stderr)
        return 2
    configure_logging(config)

    client = SpeedTestClient(
        server_url,
        upload_bytes=config.probe.upload_bytes,
        timeout=config.probe.timeout_seconds,
    )
    runner = SpeedTestRunner(client)

    record = runner.run_once()
    if record is not None:
        print(json.dumps(record, indent=2))
    elif not args.auto:
        print(runner.last_error, file=sys.stderr)
        return 1

    if not args.auto:
        return 0

    autotest = AutoTestScheduler(config, runner)
    autotest.enable()
    autotest.start()
    LOGGER.info("Auto-test running every %s minutes; press Ctrl+C to stop", autotest.interval_minutes)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        LOGGER.info("Stopping auto-test")
    finally:
        autotest.disable()
        autotest.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
