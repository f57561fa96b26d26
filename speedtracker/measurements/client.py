"""HTTP speed test client.

Runs the three probes against a tracker server, strictly one after another:

- latency: ``GET /api/ping``
- download: ``GET /api/payload``, body fully received
- upload: ``POST /api/upload`` with a fixed-size body

and submits the rounded metrics to ``POST /api/speedtests``, or hands them to
a local ``sink`` when the results are kept on the measuring side. Any failure
aborts the whole test; nothing is recorded for a partial run.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable, Dict, Optional

import requests

from .models import MeasurementResult

LOGGER = logging.getLogger(__name__)

MIB = 1024 * 1024
NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store", "Pragma": "no-cache"}


class ProbeError(RuntimeError):
    """One phase of a speed test failed; the whole test is void."""

    def __init__(self, phase: str, message: str):
        super().__init__(f"{phase} failed: {message}")
        self.phase = phase


def throughput_mbps(num_bytes: int, seconds: float, phase: str = "transfer") -> float:
    """Bits per second divided by 2**20.

    A zero, negative or non-finite duration cannot yield a throughput and
    raises ProbeError instead of producing inf/NaN.
    """
    if not math.isfinite(seconds) or seconds <= 0:
        raise ProbeError(phase, f"invalid duration {seconds!r}s")
    return (num_bytes * 8) / seconds / MIB


class SpeedTestClient:
    def __init__(
        self,
        server_url: str,
        upload_bytes: int = 2 * MIB,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.perf_counter,
        sink: Optional[Callable[[MeasurementResult], Dict[str, Any]]] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.upload_bytes = upload_bytes
        self.timeout = timeout
        self.session = session or requests.Session()
        self.clock = clock
        self.sink = sink

    def _url(self, path: str) -> str:
        return f"{self.server_url}{path}"

    def _request(self, phase: str, method: str, path: str, **kwargs) -> requests.Response:
        headers = dict(NO_CACHE_HEADERS)
        headers.update(kwargs.pop("headers", {}))
        try:
            response = self.session.request(method, self._url(path), headers=headers, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ProbeError(phase, str(exc)) from exc
        return response

    def measure_ping(self) -> float:
        """Round trip of a trivial request, in milliseconds."""
        start = self.clock()
        self._request("ping", "GET", "/api/ping")
        elapsed = self.clock() - start
        if not math.isfinite(elapsed) or elapsed <= 0:
            raise ProbeError("ping", f"invalid duration {elapsed!r}s")
        return elapsed * 1000

    def measure_download(self) -> float:
        start = self.clock()
        response = self._request("download", "GET", "/api/payload")
        # requests reads the whole body before returning unless stream=True.
        bytes_received = len(response.content)
        elapsed = self.clock() - start
        LOGGER.debug("Download probe: %d bytes in %.3fs", bytes_received, elapsed)
        return throughput_mbps(bytes_received, elapsed, "download")

    def measure_upload(self) -> float:
        body = bytes(self.upload_bytes)
        start = self.clock()
        self._request(
            "upload",
            "POST",
            "/api/upload",
            data=body,
            headers={"Content-Type": "application/octet-stream"},
        )
        elapsed = self.clock() - start
        LOGGER.debug("Upload probe: %d bytes in %.3fs", len(body), elapsed)
        return throughput_mbps(len(body), elapsed, "upload")

    def measure(self) -> MeasurementResult:
        ping_ms = self.measure_ping()
        download_mbps = self.measure_download()
        upload_mbps = self.measure_upload()
        return MeasurementResult(download_mbps=download_mbps, upload_mbps=upload_mbps, ping_ms=ping_ms).rounded()

    def submit(self, result: MeasurementResult) -> Dict[str, Any]:
        response = self._request("submit", "POST", "/api/speedtests", json=result.to_payload())
        try:
            return response.json()
        except ValueError as exc:
            raise ProbeError("submit", "server returned a non-JSON record") from exc

    def run(self) -> Dict[str, Any]:
        """Run one complete speed test and return the stored record."""
        LOGGER.info("Starting speed test against %s", self.server_url)
        result = self.measure()
        record = self.sink(result) if self.sink is not None else self.submit(result)
        LOGGER.info(
            "Speed test #%s complete: down %.2f Mbps / up %.2f Mbps / ping %.2f ms",
            record.get("id"),
            result.download_mbps,
            result.upload_mbps,
            result.ping_ms,
        )
        return record
