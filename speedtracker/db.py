"""Database utilities and ORM models."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, Optional

from sqlalchemy import DateTime, Float, Integer, create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

LOGGER = logging.getLogger(__name__)

DB_FILENAME = "speedtests.db"

# Columns added after the first release; older databases get them via ALTER TABLE.
LATE_COLUMNS: Dict[str, str] = {
    "upload_mbps": "FLOAT",
}


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class SpeedTest(Base):
    __tablename__ = "speedtests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    download_mbps: Mapped[float] = mapped_column(Float)
    upload_mbps: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    ping_ms: Mapped[float] = mapped_column(Float)


def _upgrade_schema(engine: Engine) -> None:
    table = SpeedTest.__tablename__
    existing = {column["name"] for column in inspect(engine).get_columns(table)}
    missing = [name for name in LATE_COLUMNS if name not in existing]
    if not missing:
        return

    with engine.begin() as connection:
        for name in missing:
            LOGGER.info("Adding column %s.%s to existing database", table, name)
            connection.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {LATE_COLUMNS[name]}"))


def init_db(data_dir: Path) -> sessionmaker:
    """Create or upgrade the results database; safe to call repeatedly."""

    db_path = data_dir / DB_FILENAME
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    Base.metadata.create_all(engine)
    _upgrade_schema(engine)
    return sessionmaker(bind=engine, future=True, expire_on_commit=False)


@contextmanager
def get_session(Session: sessionmaker) -> Iterator:
    session = Session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
