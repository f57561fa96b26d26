"""Flask application factory and HTTP routes."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Optional

from flask import Flask, Response, abort, jsonify, render_template, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.middleware.proxy_fix import ProxyFix

from ..config import AppConfig
from ..dashboard import build_dashboard
from ..exporter import CSVExporter
from ..measurements.models import InvalidSubmission, parse_submission
from ..runner import SpeedTestRunner
from ..scheduler import AutoTestScheduler
from ..store import ResultStore

LOGGER = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}
UPLOAD_CHUNK_SIZE = 64 * 1024


def no_cache(view):
    """Mark a response uncacheable for browsers and intermediaries."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        response = view(*args, **kwargs)
        if not isinstance(response, Response):
            response = Response(response)
        response.headers.update(NO_CACHE_HEADERS)
        return response

    return wrapper


def create_web_app(
    config: AppConfig,
    store: ResultStore,
    exporter: CSVExporter,
    runner: Optional[SpeedTestRunner] = None,
    autotest: Optional[AutoTestScheduler] = None,
) -> Flask:
    template_folder = Path(__file__).resolve().parent / "templates"
    static_folder = Path(__file__).resolve().parent / "static"

    app = Flask(__name__, template_folder=template_folder, static_folder=static_folder)
    app.config["SECRET_KEY"] = config.web.secret_key
    app.config["MAX_CONTENT_LENGTH"] = config.probe.upload_limit_bytes

    if config.web.reverse_proxy_headers:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore

    executor = ThreadPoolExecutor(max_workers=1)

    # Generated once per application instance; only size and headers matter.
    payload = os.urandom(config.probe.payload_bytes)
    LOGGER.info("Prepared %d byte download payload", len(payload))

    def status_payload() -> dict:
        return {
            "auto_test_enabled": bool(autotest and autotest.enabled),
            "is_running": bool(runner and runner.is_running),
            "error": runner.last_error if runner else None,
            "interval_minutes": config.autotest.interval_minutes,
        }

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(exc: SQLAlchemyError):
        LOGGER.error("Database operation failed: %s", exc, exc_info=True)
        return jsonify({"error": "Database operation failed"}), 500

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(_exc: RequestEntityTooLarge):
        return jsonify({"error": f"Request body exceeds {config.probe.upload_limit_bytes} bytes"}), 413

    @app.route("/")
    def index():
        records = [store.to_dict(row) for row in store.list_recent()]
        flags = status_payload()
        view = build_dashboard(
            records,
            auto_test_enabled=flags["auto_test_enabled"],
            is_running=flags["is_running"],
            error=flags["error"],
            tz=config.dashboard.timezone,
        )
        agent_url = config.client.server_url if runner is not None else None
        return render_template("index.html", view=view, config=config, agent_url=agent_url)

    # Probe endpoints -----------------------------------------------------

    @app.get("/api/ping")
    @no_cache
    def api_ping():
        return Response("pong", mimetype="text/plain")

    @app.get("/api/payload")
    @no_cache
    def api_payload():
        return Response(payload, mimetype="application/octet-stream")

    @app.post("/api/upload")
    @no_cache
    def api_upload():
        limit = config.probe.upload_limit_bytes
        if request.content_length is not None and request.content_length > limit:
            abort(413)
        received = 0
        stream = request.stream
        while True:
            chunk = stream.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            received += len(chunk)
            if received > limit:
                abort(413)
        LOGGER.debug("Upload probe received %d bytes", received)
        return Response("ok", mimetype="text/plain")

    # Results -------------------------------------------------------------

    @app.get("/api/speedtests")
    def api_list_speedtests():
        return jsonify([store.to_dict(row) for row in store.list_recent()])

    @app.post("/api/speedtests")
    def api_create_speedtest():
        body = request.get_json(silent=True)
        try:
            result = parse_submission(body)
        except InvalidSubmission as exc:
            LOGGER.warning("Rejected speed test submission: %s", exc)
            return jsonify({"error": str(exc)}), 400
        record = store.create(result)
        exporter.refresh_snapshot()
        return jsonify(store.to_dict(record))

    @app.delete("/api/speedtests")
    def api_clear_speedtests():
        store.clear()
        return jsonify({"success": True})

    @app.get("/api/export/csv")
    def api_export_csv():
        buffer = exporter.build_csv()
        filename = f"speedtests-{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S')}.csv"
        return Response(
            buffer.getvalue(),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    # Runner and auto-test control ----------------------------------------

    @app.post("/api/run")
    def api_run():
        if runner is None:
            return jsonify({"error": "Speed test runner is not configured"}), 503
        if not runner.submit_to(executor):
            return jsonify({"status": "already_running"})
        return jsonify({"status": "queued"}), 202

    @app.get("/api/status")
    def api_status():
        return jsonify(status_payload())

    @app.post("/api/autotest")
    def api_autotest():
        if autotest is None:
            return jsonify({"error": "Auto-test scheduler is not configured"}), 503
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not isinstance(data.get("enabled"), bool):
            return jsonify({"error": "Expected {\"enabled\": true|false}"}), 400
        if data["enabled"]:
            autotest.enable()
        else:
            autotest.disable()
        return jsonify(status_payload())

    return app
