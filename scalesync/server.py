"""MCP server: scalesync.ingest_csv, record queries, stats, CSV export, and read-only resources."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

from fastmcp import FastMCP

from .ingest import ingest_csv_request
from .metrics import compute_stats, serialize_to_csv, template_csv
from .models import DateRange, IngestCsvInput, UpdateRecordInput
from .records import update_record_impl
from .storage import AsyncStorage, Storage

logger = logging.getLogger(__name__)

# Default DB next to the package (or use SCALESYNC_DB_PATH)
_db_path = os.environ.get("SCALESYNC_DB_PATH", str(Path(__file__).parent.parent / "scalesync.db"))
_storage = AsyncStorage(Storage(_db_path))

mcp = FastMCP(name="scalesync")


@mcp.tool(name="scalesync.ingest_csv")
async def scalesync_ingest_csv(payload: dict) -> dict:
    """
    Import a smart-scale CSV export (raw scale format or a previously exported file).
    Provide `content` (file text) or `path`. One record is kept per date; re-importing identical
    data is skipped. Returns persisted records and counters (created, updated, skipped,
    invalid_records, errors). An unrecognized header returns status=error and writes nothing.
    """
    inp = IngestCsvInput.model_validate(payload)
    result = await ingest_csv_request(inp, _storage)
    out = result.model_dump(mode="json")
    out["records"] = [r.to_display(include_id=True) for r in result.records]
    return out


@mcp.tool(name="scalesync.list_records")
async def scalesync_list_records(payload: dict | None = None) -> dict:
    """List stored records (oldest first) in display form. Optional `start`/`end` (YYYY-MM-DD)."""
    range_ = DateRange.model_validate(payload or {})
    records = await _storage.list_records(range_.start, range_.end)
    return {"count": len(records), "data": [r.to_display(include_id=True) for r in records]}


@mcp.tool(name="scalesync.stats")
async def scalesync_stats() -> dict:
    """Count, oldest and latest record, and per-measurement averages of non-zero readings."""
    records = await _storage.list_records()
    return compute_stats(records).model_dump()


@mcp.tool(name="scalesync.export_csv")
async def scalesync_export_csv() -> str:
    """All stored records as CSV in the display vocabulary (re-importable)."""
    return serialize_to_csv(await _storage.list_records())


@mcp.tool(name="scalesync.template_csv")
def scalesync_template_csv() -> str:
    """Header-only CSV template for manual entry."""
    return template_csv()


@mcp.tool(name="scalesync.update_record")
async def scalesync_update_record(payload: dict) -> dict:
    """
    Edit one stored record. Payload: `record_id` and `data`, a display-keyed dict of fields to
    change (e.g. {"Weight": 181.2, "HR": 64}). Numbers must be numeric; `Date` accepts MM-DD-YY
    or MM/DD/YYYY. Returns status=error with one message per bad field.
    """
    inp = UpdateRecordInput.model_validate(payload)
    return (await update_record_impl(inp, _storage)).model_dump(mode="json")


@mcp.tool(name="scalesync.delete_record")
async def scalesync_delete_record(record_id: str) -> dict:
    """Delete one stored record by id; `deleted` is false when no such record exists."""
    deleted = await _storage.delete_record(record_id)
    return {"record_id": record_id, "deleted": deleted}


@mcp.tool(name="scalesync.clear_records")
async def scalesync_clear_records() -> dict:
    """Delete every stored record."""
    return {"deleted_count": await _storage.clear()}


@mcp.resource("record://{record_id}", mime_type="application/json")
async def resource_record(record_id: str) -> str:
    """Read-only: one stored record in display form."""
    record = await _storage.get_record(record_id)
    if not record:
        return json.dumps({"error": "record not found", "record_id": record_id})
    out = record.to_display(include_id=True)
    out["created_at"] = record.created_at
    out["updated_at"] = record.updated_at
    return json.dumps(out, indent=2)


def run() -> None:
    """Run the MCP server with stdio transport (default). Logs go to stderr."""
    logging.basicConfig(
        level=os.environ.get("SCALESYNC_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stderr,
    )
    mcp.run()


if __name__ == "__main__":
    run()
