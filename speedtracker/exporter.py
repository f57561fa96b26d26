"""CSV export helpers for speed test history."""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import Optional

from .config import AppConfig
from .db import SpeedTest
from .store import ResultStore, format_timestamp

LOGGER = logging.getLogger(__name__)


class CSVExporter:
    HEADER = ["id", "timestamp", "download_mbps", "upload_mbps", "ping_ms"]

    def __init__(self, config: AppConfig, store: ResultStore):
        self.config = config
        self.store = store

    def build_csv(self) -> io.StringIO:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(self.HEADER)

        for record in self.store.iter_all():
            writer.writerow(self._row_for_record(record))

        buffer.seek(0)
        return buffer

    @staticmethod
    def _row_for_record(record: SpeedTest) -> list:
        return [
            record.id,
            format_timestamp(record.timestamp),
            CSVExporter._blank_if_none(record.download_mbps),
            CSVExporter._blank_if_none(record.upload_mbps),
            CSVExporter._blank_if_none(record.ping_ms),
        ]

    @staticmethod
    def _blank_if_none(value):
        return "" if value is None else value

    def write_snapshot(self) -> Path:
        buffer = self.build_csv()
        target = self.config.paths.data_dir / self.config.export.csv_name
        target.write_text(buffer.getvalue(), encoding="utf-8")
        return target

    def refresh_snapshot(self) -> Optional[Path]:
        """Rewrite the on-disk snapshot; a failure is logged, never raised."""
        try:
            return self.write_snapshot()
        except OSError:
            LOGGER.exception("Could not write CSV snapshot")
            return None
