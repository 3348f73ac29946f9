"""Deterministic summaries over stored records: CSV export, import template, stats."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Iterable

from .models import DISPLAY_FIELDS, CanonicalRecord, RecordStats

TEMPLATE_HEADERS: list[str] = list(DISPLAY_FIELDS)


def _format_cell(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.2f}"
    if value is None:
        return ""
    s = str(value)
    if "," in s:
        return f'"{s}"'
    return s


def serialize_to_csv(records: Iterable[CanonicalRecord]) -> str:
    """
    Export records in the display vocabulary (re-importable as the pre-processed format).
    Numbers have two decimals. Returns "" for no records.
    """
    rows = [r.to_display() for r in records]
    if not rows:
        return ""
    lines = [",".join(TEMPLATE_HEADERS)]
    for row in rows:
        lines.append(",".join(_format_cell(row[h]) for h in TEMPLATE_HEADERS))
    return "\n".join(lines)


def template_csv() -> str:
    """Empty import template: the header row only."""
    return ",".join(TEMPLATE_HEADERS) + "\n"


def compute_stats(records: list[CanonicalRecord]) -> RecordStats:
    """Count, oldest and latest record, and the mean of non-zero readings per measurement."""
    if not records:
        return RecordStats()
    ordered = sorted(records, key=lambda r: r.date)
    sums: dict[str, float] = defaultdict(float)
    counts: dict[str, int] = defaultdict(int)
    for r in ordered:
        for display, attr in DISPLAY_FIELDS.items():
            if attr == "date":
                continue
            value = getattr(r, attr)
            # 0 means "not measured" for scale readings
            if value:
                sums[display] += value
                counts[display] += 1
    averages = {
        display: round(sums[display] / counts[display], 2)
        for display in TEMPLATE_HEADERS
        if counts.get(display)
    }
    return RecordStats(
        count=len(ordered),
        oldest=ordered[0].to_display(include_id=True),
        latest=ordered[-1].to_display(include_id=True),
        averages=averages,
    )
