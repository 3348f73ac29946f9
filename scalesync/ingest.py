"""Ingest workflow: tokenize CSV, detect format, normalize, filter, convert, dedupe by date, reconcile with the store."""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from .models import (
    CanonicalRecord,
    CsvFormat,
    IngestCsvInput,
    IngestCsvOutput,
    NUMERIC_FIELDS,
    RawRecord,
    RunResult,
)
from .normalize import convert_record, extract_number, is_missing, normalize_fields, parse_scale_date
from .storage import RecordStore

logger = logging.getLogger(__name__)

EPSILON = 0.0001

# Raw scale export: a row is dropped when more than MAX_MISSING_FIELDS of these are missing.
RAW_REQUIRED_FIELDS: tuple[str, ...] = (
    "Body Fat",
    "Fat-Free Body Weight",
    "Subcutaneous Fat",
    "Visceral Fat",
    "Body Water",
    "Muscle Mass",
    "Bone Mass",
    "Protein",
    "BMR",
    "Metabolic Age",
    "Heart Rate",
)

PROCESSED_CHECK_FIELDS: tuple[str, ...] = (
    "Weight",
    "BMI",
    "Body Fat %",
    "V-Fat",
    "S-Fat",
    "HR",
    "Water %",
    "Muscle Mass",
)

MAX_MISSING_FIELDS = 3
# Processed rows: missing + zero-valued fields may not exceed this.
MAX_MISSING_OR_ZERO_FIELDS = MAX_MISSING_FIELDS + 2

_MEASUREMENT_COLUMNS = ("BMI", "Weight")


class UnrecognizedFormatError(ValueError):
    """Header matches neither the raw scale export nor the pre-processed shape."""


def _first_line(content: str) -> str:
    for line in content.splitlines():
        if line.strip():
            return line.strip().lstrip("\ufeff")
    return ""


def _split_line(line: str) -> list[str]:
    # '"' toggles quoting and is never kept; commas split only outside quotes.
    # Lines are split one at a time, so an unbalanced quote cannot swallow later rows.
    values: list[str] = []
    field: list[str] = []
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            values.append("".join(field).strip())
            field = []
        else:
            field.append(ch)
    values.append("".join(field).strip())
    return values


def parse_csv(content: str) -> list[RawRecord]:
    """
    Parse CSV text into header -> value dicts. Quoted fields may contain commas
    ("4/5/2025, 8:43 AM" stays one value); quote characters are dropped. Blank lines
    are skipped. Rows with a different width than the header are padded with "" or
    truncated, never dropped.
    """
    if not content or not content.strip():
        return []
    lines = [line.strip() for line in content.splitlines() if line.strip()]
    headers = _split_line(lines[0].lstrip("\ufeff"))
    if not headers:
        return []
    records: list[RawRecord] = []
    for line_no, line in enumerate(lines[1:], start=2):
        values = _split_line(line)
        if len(values) != len(headers):
            logger.warning(
                "Line %d has %d values but header has %d; aligning",
                line_no, len(values), len(headers),
            )
            values = (values + [""] * len(headers))[: len(headers)]
        records.append(dict(zip(headers, values)))
    return records


def detect_format(content: str) -> CsvFormat:
    """Decide raw vs pre-processed from the header line alone; raise UnrecognizedFormatError otherwise."""
    header = _first_line(content or "")
    columns = _split_line(header) if header else []

    def has(fragment: str) -> bool:
        return any(fragment in c for c in columns)

    if has("Time") and has("Body Fat"):
        return "raw"
    if has("Date") and any(has(m) for m in _MEASUREMENT_COLUMNS):
        return "processed"
    raise UnrecognizedFormatError(
        f"Unrecognized CSV format: expected 'Time' and 'Body Fat' (scale export) or 'Date' and 'BMI' "
        f"(processed) columns, got {columns[:10]}"
    )


def is_complete(record: RawRecord, fmt: CsvFormat) -> bool:
    """Completeness check on a normalized row; the tolerance depends on the source format."""
    if fmt == "raw":
        if parse_scale_date(record.get("Time")) is None:
            return False
        missing = sum(1 for f in RAW_REQUIRED_FIELDS if is_missing(record.get(f)))
        return missing <= MAX_MISSING_FIELDS
    if not record.get("Date"):
        return False
    missing = 0
    zeros = 0
    for f in PROCESSED_CHECK_FIELDS:
        value = record.get(f)
        if is_missing(value):
            missing += 1
        elif extract_number(value) == 0:
            zeros += 1
    return missing <= MAX_MISSING_FIELDS and missing + zeros <= MAX_MISSING_OR_ZERO_FIELDS


def filter_complete(records: Iterable[RawRecord], fmt: CsvFormat) -> list[RawRecord]:
    kept = []
    for record in records:
        if is_complete(record, fmt):
            kept.append(record)
        else:
            logger.debug("Dropping incomplete %s record %r", fmt, record.get("Time") or record.get("Date"))
    return kept


def completeness_score(record: CanonicalRecord) -> int:
    """Number of measurements that are not zero."""
    return sum(1 for name in NUMERIC_FIELDS if getattr(record, name))


def deduplicate_by_date(records: Iterable[CanonicalRecord]) -> list[CanonicalRecord]:
    """
    Keep one record per calendar date: the one with the highest completeness score.
    Ties keep the first record seen for that date.
    """
    by_date: dict[date, list[CanonicalRecord]] = {}
    for record in records:
        by_date.setdefault(record.date, []).append(record)
    out: list[CanonicalRecord] = []
    for day, candidates in by_date.items():
        if len(candidates) == 1:
            out.append(candidates[0])
            continue
        # max() returns the first maximal element, so input order breaks ties
        best = max(candidates, key=completeness_score)
        logger.debug("Selected best of %d records for %s", len(candidates), day.isoformat())
        out.append(best)
    return out


def has_identical_data(existing: CanonicalRecord, incoming: CanonicalRecord, epsilon: float = EPSILON) -> bool:
    return all(
        abs(getattr(existing, name) - getattr(incoming, name)) < epsilon
        for name in NUMERIC_FIELDS
    )


async def reconcile_records(
    records: list[CanonicalRecord],
    store: RecordStore,
) -> tuple[list[CanonicalRecord], RunResult]:
    """
    Create, update, or skip each record against the stored record for its date, one at a time.
    A failing store call is counted under errors and does not stop the batch.
    Returns (persisted records with ids, RunResult with created/updated/skipped/errors filled).
    """
    result = RunResult()
    persisted: list[CanonicalRecord] = []
    for record in records:
        try:
            existing = await store.find_by_date(record.date)
            if existing is None:
                stored = await store.create(record)
                result.created += 1
                logger.info("Created record for %s", record.date_display)
            elif has_identical_data(existing, record):
                stored = existing
                result.skipped += 1
                logger.debug("Skipping identical record for %s", record.date_display)
            else:
                stored = await store.update(existing.id, record)
                result.updated += 1
                logger.info("Updated record for %s", record.date_display)
        except Exception:
            logger.exception("Error saving record for %s", record.date_display)
            result.errors += 1
            continue
        persisted.append(record.model_copy(update={"id": stored.id}))
    return persisted, result


async def ingest_csv_impl(content: str, store: RecordStore) -> IngestCsvOutput:
    """
    Run the whole pipeline over one file's text. Raises UnrecognizedFormatError before touching
    the store when the header is not recognized; every other problem is counted in the RunResult.
    """
    if not content or not content.strip():
        return IngestCsvOutput(status="ok", message="Empty file; nothing to import.")

    fmt = detect_format(content)
    rows = parse_csv(content)
    logger.info("Detected %s format, %d data rows", fmt, len(rows))

    normalized = [normalize_fields(r) for r in rows]
    complete = filter_complete(normalized, fmt)
    if len(complete) < len(normalized):
        logger.info("Filtered to %d complete rows (removed %d)", len(complete), len(normalized) - len(complete))

    converted: list[CanonicalRecord] = []
    invalid = 0
    for row in complete:
        record = convert_record(row)
        if record is None:
            invalid += 1
        else:
            converted.append(record)

    deduped = deduplicate_by_date(converted)
    logger.info("After deduplication: %d unique dates", len(deduped))

    persisted, result = await reconcile_records(deduped, store)
    result.total_records = len(rows)
    result.invalid_records = invalid
    persisted.sort(key=lambda r: r.date, reverse=True)
    logger.info("Import complete: %s", result.model_dump())

    status = "ok" if not (result.errors or result.invalid_records) else "ok_with_warnings"
    return IngestCsvOutput(status=status, format=fmt, records=persisted, result=result)


def read_csv_file(path: str, encoding: str = "utf-8") -> str:
    with open(path, encoding=encoding, errors="replace") as f:
        return f.read()


async def ingest_csv_request(inp: IngestCsvInput, store: RecordStore) -> IngestCsvOutput:
    """Resolve `content` or `path` and run the pipeline; bad input comes back as status=error, never raised."""
    content = inp.content
    if content is None:
        if not inp.path:
            return IngestCsvOutput(status="error", message="Provide content or path.")
        try:
            content = read_csv_file(inp.path)
        except OSError as e:
            logger.warning("Cannot read %s: %s", inp.path, e)
            return IngestCsvOutput(status="error", message=f"Cannot read {inp.path}: {e.strerror or e}")
    try:
        return await ingest_csv_impl(content, store)
    except UnrecognizedFormatError as e:
        logger.warning("Rejected upload: %s", e)
        return IngestCsvOutput(status="error", message=str(e))
