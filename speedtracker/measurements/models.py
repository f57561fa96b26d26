"""Shared dataclasses for measurements."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

METRIC_FIELDS = ("download_mbps", "upload_mbps", "ping_ms")
OPTIONAL_FIELDS = frozenset({"upload_mbps"})


class InvalidSubmission(ValueError):
    """A measurement submission that does not have the record shape."""


@dataclass(frozen=True)
class MeasurementResult:
    download_mbps: float
    upload_mbps: Optional[float]
    ping_ms: float

    def rounded(self, digits: int = 2) -> "MeasurementResult":
        return MeasurementResult(
            download_mbps=round(self.download_mbps, digits),
            upload_mbps=None if self.upload_mbps is None else round(self.upload_mbps, digits),
            ping_ms=round(self.ping_ms, digits),
        )

    def to_payload(self) -> Dict[str, Optional[float]]:
        return asdict(self)


def _metric(payload: Dict[str, Any], name: str) -> Optional[float]:
    value = payload.get(name)
    if value is None:
        if name in OPTIONAL_FIELDS:
            return None
        raise InvalidSubmission(f"{name} is required")
    # bool is an int subclass; JSON true/false is not a measurement.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidSubmission(f"{name} must be a number")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidSubmission(f"{name} must be finite")
    if value < 0:
        raise InvalidSubmission(f"{name} must not be negative")
    return value


def parse_submission(payload: Any) -> MeasurementResult:
    """Convert a decoded JSON body into a MeasurementResult or raise InvalidSubmission."""

    if not isinstance(payload, dict):
        raise InvalidSubmission("Expected a JSON object")
    values = {name: _metric(payload, name) for name in METRIC_FIELDS}
    return MeasurementResult(**values)
