"""Tests for schema creation and the upload_mbps column upgrade."""

from sqlalchemy import create_engine, inspect, text

from speedtracker.db import DB_FILENAME, init_db


def _columns(db_path):
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        return {column["name"] for column in inspect(engine).get_columns("speedtests")}
    finally:
        engine.dispose()


def _create_legacy_table(db_path):
    engine = create_engine(f"sqlite:///{db_path}")
    with engine.begin() as connection:
        connection.execute(
            text(
                "CREATE TABLE speedtests ("
                "id INTEGER PRIMARY KEY AUTOINCREMENT, "
                "timestamp DATETIME DEFAULT CURRENT_TIMESTAMP, "
                "download_mbps REAL, "
                "ping_ms REAL)"
            )
        )
        connection.execute(
            text(
                "INSERT INTO speedtests (timestamp, download_mbps, ping_ms) "
                "VALUES ('2024-05-01 08:30:00', 87.5, 14.0)"
            )
        )
    engine.dispose()


def _rows(db_path):
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        with engine.connect() as connection:
            return connection.execute(
                text("SELECT id, timestamp, download_mbps, upload_mbps, ping_ms FROM speedtests ORDER BY id")
            ).all()
    finally:
        engine.dispose()


def test_fresh_database_has_all_columns(tmp_path):
    init_db(tmp_path).kw["bind"].dispose()

    assert _columns(tmp_path / DB_FILENAME) == {"id", "timestamp", "download_mbps", "upload_mbps", "ping_ms"}


def test_legacy_table_gains_upload_column_without_data_loss(tmp_path):
    db_path = tmp_path / DB_FILENAME
    _create_legacy_table(db_path)

    init_db(tmp_path).kw["bind"].dispose()

    assert "upload_mbps" in _columns(db_path)
    rows = _rows(db_path)
    assert len(rows) == 1
    assert rows[0].download_mbps == 87.5
    assert rows[0].upload_mbps is None
    assert rows[0].ping_ms == 14.0


def test_reinitializing_migrated_store_is_a_no_op(tmp_path):
    db_path = tmp_path / DB_FILENAME
    _create_legacy_table(db_path)
    init_db(tmp_path).kw["bind"].dispose()
    before = _rows(db_path)

    init_db(tmp_path).kw["bind"].dispose()
    init_db(tmp_path).kw["bind"].dispose()

    assert _rows(db_path) == before
