"""Read-only projections of the session history.

These functions feed the dashboard and the log screen. None of them touch
the store's writer; they only read snapshots.

CSV Export Format:
    Header row, then one row per record, fields joined by ',' and rows by
    '\\n' (no trailing newline):

        ID,Fecha,Texto,Previsión,Probabilidad
        AN-3F9A1C07,2024-06-01T12:00:00.000Z,"Muy ""bueno"" todo",Positive,0.9700

    - Fecha: UTC, ISO-8601 with milliseconds and a 'Z' suffix
    - Texto: always double-quoted, inner quotes doubled
    - Probabilidad: fixed 4 decimals
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Sequence

from history import HistoryStore
from models.sentiment import AggregateStats, ClassificationRecord, SentimentLabel

logger = logging.getLogger(__name__)

# Column names are part of the export format and stay fixed regardless of LANGUAGE
CSV_HEADER = ("ID", "Fecha", "Texto", "Previsión", "Probabilidad")
DEFAULT_TREND_SIZE = 10


def filter_records(
    records: Iterable[ClassificationRecord],
    search: str = "",
    label: SentimentLabel | None = None,
) -> list[ClassificationRecord]:
    """Filter records for the log screen.

    Args:
        records: Records in display order
        search: Case-insensitive substring matched against the text
        label: Keep only this label (None keeps all)

    Returns:
        Matching records, order preserved
    """
    needle = search.lower()
    return [
        r for r in records
        if needle in r.text.lower() and (label is None or r.label == label)
    ]


def format_timestamp(value: datetime) -> str:
    """Format a timestamp as UTC ISO-8601 with milliseconds, e.g. '2024-06-01T12:00:00.000Z'."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def export_csv(records: Iterable[ClassificationRecord]) -> str:
    """Render records as CSV text in the export format described above."""
    rows = [",".join(CSV_HEADER)]
    for r in records:
        rows.append(",".join((
            r.id,
            format_timestamp(r.created_at),
            _quote(r.text),
            r.label.value,
            f"{r.confidence:.4f}",
        )))
    return "\n".join(rows)


def write_csv(records: Sequence[ClassificationRecord], path: Path) -> Path:
    """Write the CSV export to ``path`` (UTF-8).

    Returns:
        The path written
    """
    path = Path(path)
    if path.parent != Path("."):
        path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(export_csv(records), encoding="utf-8")
    logger.info("CSV export written | path=%s rows=%d", path, len(records))
    return path


@dataclass(frozen=True)
class TrendPoint:
    """One bar of the confidence trend chart."""

    id: str
    label: SentimentLabel
    confidence: float


@dataclass(frozen=True)
class DashboardSnapshot:
    """Everything the dashboard renders, computed from one history read.

    Attributes:
        stats: Aggregate counts and average confidence
        distribution: (label, count) pairs in fixed label order, zero counts omitted
        trend: Confidence of the last ``trend_size`` records in stored order
    """

    stats: AggregateStats
    distribution: tuple[tuple[SentimentLabel, int], ...] = ()
    trend: tuple[TrendPoint, ...] = field(default_factory=tuple)

    @classmethod
    def from_store(cls, store: HistoryStore, trend_size: int = DEFAULT_TREND_SIZE) -> "DashboardSnapshot":
        stats = store.stats()
        distribution = tuple(
            (label, stats.count(label))
            for label in SentimentLabel
            if stats.count(label) > 0
        )
        trend = tuple(
            TrendPoint(id=r.id, label=r.label, confidence=r.confidence)
            for r in store.tail(trend_size)
        )
        return cls(stats=stats, distribution=distribution, trend=trend)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "stats": self.stats.to_dict(),
            "shares": {
                label.value: round(self.stats.share(label), 4) for label in SentimentLabel
            },
            "distribution": {label.value: count for label, count in self.distribution},
            "trend": [
                {"id": p.id, "label": p.label.value, "confidence": p.confidence}
                for p in self.trend
            ],
        }
