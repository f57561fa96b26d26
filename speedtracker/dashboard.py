"""Dashboard view model.

Everything the page shows is derived from the newest-first record list plus
the runner flags; nothing here keeps state between requests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

PLACEHOLDER = "--"

CHART_WIDTH = 600
CHART_HEIGHT = 240
CHART_PADDING = 12
MAX_X_LABELS = 6


@dataclass
class SummaryCards:
    download: str = PLACEHOLDER
    upload: str = PLACEHOLDER
    ping: str = PLACEHOLDER
    last_time: str = "--:--"
    last_date: str = "No tests yet"


@dataclass
class ChartView:
    width: int = CHART_WIDTH
    height: int = CHART_HEIGHT
    max_value: float = 0.0
    download_points: str = ""
    upload_points: str = ""
    x_labels: List[Tuple[float, str]] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return bool(self.download_points)


@dataclass
class HistoryRow:
    id: int
    measured_at: str
    download: str
    upload: str
    ping: str


@dataclass
class DashboardView:
    summary: SummaryCards
    chart: ChartView
    history: List[HistoryRow]
    auto_test_enabled: bool = False
    is_running: bool = False
    error: Optional[str] = None


def parse_timestamp(raw: str) -> datetime:
    """Parse an API timestamp; values without an offset are taken as UTC."""
    candidate = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    value = datetime.fromisoformat(candidate)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _fmt(value: Optional[float], digits: int) -> str:
    return PLACEHOLDER if value is None else f"{value:.{digits}f}"


def build_summary(latest: Optional[dict], tz: ZoneInfo) -> SummaryCards:
    if latest is None:
        return SummaryCards()
    measured = parse_timestamp(latest["timestamp"]).astimezone(tz)
    return SummaryCards(
        download=_fmt(latest.get("download_mbps"), 1),
        upload=_fmt(latest.get("upload_mbps"), 1),
        ping=_fmt(latest.get("ping_ms"), 0),
        last_time=measured.strftime("%H:%M"),
        last_date=measured.strftime("%Y/%m/%d"),
    )


def build_chart(oldest_first: Sequence[dict], tz: ZoneInfo) -> ChartView:
    chart = ChartView()
    if not oldest_first:
        return chart

    values = [r[key] for r in oldest_first for key in ("download_mbps", "upload_mbps") if r.get(key) is not None]
    chart.max_value = max(values) if values else 0.0
    scale = chart.max_value or 1.0

    plot_width = chart.width - 2 * CHART_PADDING
    plot_height = chart.height - 2 * CHART_PADDING
    count = len(oldest_first)
    step = plot_width / (count - 1) if count > 1 else 0.0

    def x_at(index: int) -> float:
        return CHART_PADDING + (index * step if count > 1 else plot_width / 2)

    def y_at(value: float) -> float:
        return CHART_PADDING + plot_height - (value / scale) * plot_height

    download, upload = [], []
    for index, record in enumerate(oldest_first):
        x = x_at(index)
        if record.get("download_mbps") is not None:
            download.append(f"{x:.1f},{y_at(record['download_mbps']):.1f}")
        if record.get("upload_mbps") is not None:
            upload.append(f"{x:.1f},{y_at(record['upload_mbps']):.1f}")
    chart.download_points = " ".join(download)
    chart.upload_points = " ".join(upload)

    stride = max(1, -(-count // MAX_X_LABELS))
    for index in range(0, count, stride):
        label = parse_timestamp(oldest_first[index]["timestamp"]).astimezone(tz).strftime("%H:%M")
        chart.x_labels.append((round(x_at(index), 1), label))
    return chart


def build_history(newest_first: Sequence[dict], tz: ZoneInfo) -> List[HistoryRow]:
    return [
        HistoryRow(
            id=record["id"],
            measured_at=parse_timestamp(record["timestamp"]).astimezone(tz).strftime("%Y/%m/%d %H:%M:%S"),
            download=_fmt(record.get("download_mbps"), 2),
            upload=_fmt(record.get("upload_mbps"), 2),
            ping=_fmt(record.get("ping_ms"), 0),
        )
        for record in newest_first
    ]


def build_dashboard(
    records: Sequence[dict],
    auto_test_enabled: bool = False,
    is_running: bool = False,
    error: Optional[str] = None,
    tz: str = "UTC",
) -> DashboardView:
    """Build the page model from records ordered newest first."""
    zone = ZoneInfo(tz)
    return DashboardView(
        summary=build_summary(records[0] if records else None, zone),
        chart=build_chart(list(reversed(records)), zone),
        history=build_history(records, zone),
        auto_test_enabled=auto_test_enabled,
        is_running=is_running,
        error=error,
    )
