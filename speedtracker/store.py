"""Result persistence: append-only log of speed test records."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import sessionmaker

from .db import SpeedTest, get_session, utcnow
from .measurements.models import MeasurementResult

LOGGER = logging.getLogger(__name__)


def format_timestamp(value: datetime) -> str:
    """Render a stored (naive UTC) timestamp as ISO 8601 with a Z suffix."""
    return value.isoformat(timespec="microseconds") + "Z"


class ResultStore:
    def __init__(self, session_factory: sessionmaker, history_limit: int = 100):
        self.Session = session_factory
        self.history_limit = history_limit
        self._write_lock = threading.Lock()

    def create(self, result: MeasurementResult) -> SpeedTest:
        with self._write_lock, get_session(self.Session) as session:
            timestamp = utcnow()
            newest = session.query(func.max(SpeedTest.timestamp)).scalar()
            if newest is not None and timestamp < newest:
                LOGGER.warning(
                    "System clock is behind the newest record (%s < %s); reusing its timestamp",
                    timestamp.isoformat(),
                    newest.isoformat(),
                )
                timestamp = newest

            record = SpeedTest(
                timestamp=timestamp,
                download_mbps=result.download_mbps,
                upload_mbps=result.upload_mbps,
                ping_ms=result.ping_ms,
            )
            session.add(record)
            session.flush()
            LOGGER.info(
                "Stored speed test #%d at %s (down %.2f Mbps / up %s Mbps / ping %.2f ms)",
                record.id,
                record.timestamp.isoformat(),
                record.download_mbps,
                "--" if record.upload_mbps is None else f"{record.upload_mbps:.2f}",
                record.ping_ms,
            )
            return record

    def list_recent(self, limit: Optional[int] = None) -> List[SpeedTest]:
        """Newest first, never more than the retention window."""

        limit = self.history_limit if not limit else min(limit, self.history_limit)
        with get_session(self.Session) as session:
            return (
                session.query(SpeedTest)
                .order_by(desc(SpeedTest.timestamp), desc(SpeedTest.id))
                .limit(limit)
                .all()
            )

    def iter_all(self) -> List[SpeedTest]:
        with get_session(self.Session) as session:
            return session.query(SpeedTest).order_by(SpeedTest.timestamp, SpeedTest.id).all()

    def clear(self) -> int:
        with self._write_lock, get_session(self.Session) as session:
            deleted = session.query(SpeedTest).delete()
        LOGGER.warning("Cleared speed test history (%d records deleted)", deleted)
        return deleted

    @staticmethod
    def to_dict(record: SpeedTest) -> dict:
        return {
            "id": record.id,
            "timestamp": format_timestamp(record.timestamp),
            "download_mbps": record.download_mbps,
            "upload_mbps": record.upload_mbps,
            "ping_ms": record.ping_ms,
        }
