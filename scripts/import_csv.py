#!/usr/bin/env python3
"""
Run smart-scale CSV files through the scalesync import pipeline (no MCP server needed).
Usage: python scripts/import_csv.py FILE [FILE ...] [--db PATH]
"""
from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

# Project root = parent of scripts/
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scalesync.ingest import UnrecognizedFormatError, ingest_csv_impl, read_csv_file
from scalesync.storage import AsyncStorage, Storage

DEFAULT_DB = ROOT / "scalesync.db"


async def _import_all(paths: list[Path], storage: AsyncStorage) -> int:
    failures = 0
    for path in paths:
        print(f"\n{'='*60}")
        print(f"FILE: {path.name}")
        print("=" * 60)
        if not path.exists():
            print("[SKIP] file not found")
            failures += 1
            continue
        try:
            out = await ingest_csv_impl(read_csv_file(str(path)), storage)
        except UnrecognizedFormatError as e:
            print(f"[REJECTED] {e}")
            failures += 1
            continue
        r = out.result
        print(f"Status: {out.status}  format={out.format}")
        print(
            f"Rows: {r.total_records}  created={r.created}  updated={r.updated}  skipped={r.skipped}  "
            f"invalid={r.invalid_records}  errors={r.errors}"
        )
        for rec in out.records[:5]:
            print(f"  {rec.date_display}: weight={rec.weight}  body_fat={rec.body_fat_pct}%  id={rec.id}")
    return failures


def main() -> None:
    args = sys.argv[1:]
    db = DEFAULT_DB
    if "--db" in args:
        i = args.index("--db")
        db = Path(args[i + 1])
        del args[i:i + 2]
    if not args:
        print(__doc__.strip())
        sys.exit(2)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(name)s | %(levelname)s | %(message)s")
    storage = AsyncStorage(Storage(db))
    try:
        failures = asyncio.run(_import_all([Path(a) for a in args], storage))
    finally:
        storage.close()
    print(f"\nDB: {db}")
    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
