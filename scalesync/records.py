"""Single-record edits in the display vocabulary: validate, merge onto the stored record, save."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from .models import DISPLAY_FIELDS, CanonicalRecord, UpdateRecordInput, UpdateRecordOutput
from .normalize import parse_scale_date
from .storage import AsyncStorage

logger = logging.getLogger(__name__)

NUMERIC_DISPLAY_FIELDS: tuple[str, ...] = tuple(k for k in DISPLAY_FIELDS if k != "Date")


def validate_update_data(data: dict[str, Any]) -> list[str]:
    """One message per bad field. Numbers must be real numbers, not numeric strings; unknown keys are ignored."""
    errors: list[str] = []
    if "Date" in data:
        value = data["Date"]
        if not isinstance(value, str) or parse_scale_date(value) is None:
            errors.append("Invalid date format. Use MM-DD-YY or MM/DD/YYYY")
    for field in NUMERIC_DISPLAY_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"{field} must be a valid number")
    return errors


async def update_record_impl(inp: UpdateRecordInput, store: AsyncStorage) -> UpdateRecordOutput:
    """
    Apply a partial, display-keyed edit to one stored record. Fields not in the payload keep
    their stored values. Moving a record onto a date that already has one is refused.
    """
    errors = validate_update_data(inp.data)
    if errors:
        return UpdateRecordOutput(status="error", record_id=inp.record_id, errors=errors)

    existing = await store.get_record(inp.record_id)
    if existing is None:
        return UpdateRecordOutput(status="error", record_id=inp.record_id, errors=["record not found"])

    record_date = parse_scale_date(inp.data["Date"]) if "Date" in inp.data else existing.date
    merged = {**existing.to_display(), **{k: v for k, v in inp.data.items() if k in DISPLAY_FIELDS}}
    record = CanonicalRecord.from_display(merged, record_date)
    try:
        stored = await store.update(inp.record_id, record)
    except sqlite3.IntegrityError:
        return UpdateRecordOutput(
            status="error",
            record_id=inp.record_id,
            errors=[f"a record already exists for {record.date_display}"],
        )
    logger.info("Edited record %s (%s)", inp.record_id, ", ".join(sorted(inp.data)))
    return UpdateRecordOutput(status="ok", record_id=inp.record_id, record=stored.to_display(include_id=True))
