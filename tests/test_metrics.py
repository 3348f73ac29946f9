"""CSV export, import template, stats, and the record queries behind the server tools."""

import sqlite3
import tempfile
from datetime import date
from pathlib import Path

import pytest
from pydantic import ValidationError

from scalesync.metrics import TEMPLATE_HEADERS, compute_stats, serialize_to_csv, template_csv
from scalesync.models import CanonicalRecord, DateRange
from scalesync.storage import Storage


def _rec(day: int, **values: float) -> CanonicalRecord:
    return CanonicalRecord(date=date(2025, 4, day), **values)


def test_export_uses_display_headers_and_two_decimals() -> None:
    out = serialize_to_csv([_rec(5, weight=200, bmi=28.456, heart_rate=68)])
    header, row = out.split("\n")
    assert header == ",".join(TEMPLATE_HEADERS)
    assert header.startswith("Date,Weight,BMI,Body Fat %,V-Fat,S-Fat,Age,HR,Water %")
    cells = dict(zip(header.split(","), row.split(",")))
    assert cells["Date"] == "04-05-25"
    assert cells["Weight"] == "200.00"
    assert cells["BMI"] == "28.46"
    assert cells["HR"] == "68.00"
    assert cells["Protien %"] == "0.00"


def test_export_of_nothing_is_empty_string() -> None:
    assert serialize_to_csv([]) == ""


def test_template_is_header_only() -> None:
    t = template_csv()
    assert t.endswith("\n")
    assert t.strip().split(",") == TEMPLATE_HEADERS
    assert "Protien %" in TEMPLATE_HEADERS
    assert len(TEMPLATE_HEADERS) == 15


def test_stats_average_non_zero_readings() -> None:
    stats = compute_stats([
        _rec(7, weight=199, heart_rate=0),
        _rec(5, weight=200, heart_rate=70),
        _rec(6, weight=201.5, heart_rate=66),
    ])
    assert stats.count == 3
    assert stats.oldest["Date"] == "04-05-25"
    assert stats.latest["Date"] == "04-07-25"
    assert stats.averages["Weight"] == pytest.approx(200.17)
    # zero heart rate on the 7th is "not measured"
    assert stats.averages["HR"] == 68.0
    assert "BMR" not in stats.averages


def test_stats_of_nothing() -> None:
    stats = compute_stats([])
    assert stats.count == 0
    assert stats.oldest is None
    assert stats.averages == {}


def test_list_delete_and_clear() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        storage = Storage(Path(tmp) / "metrics_test.db")
        for day in (7, 5, 6):
            storage.create(_rec(day, weight=200 + day))

        all_rows = storage.list_records()
        assert [r.date for r in all_rows] == [date(2025, 4, 5), date(2025, 4, 6), date(2025, 4, 7)]
        window = storage.list_records(start=date(2025, 4, 6), end=date(2025, 4, 6))
        assert [r.weight for r in window] == [206]
        assert [r.date for r in storage.list_records(start=date(2025, 4, 6))] == [date(2025, 4, 6), date(2025, 4, 7)]

        target = all_rows[0]
        fetched = storage.get_record(target.id)
        assert fetched is not None and fetched.created_at
        assert storage.delete_record(target.id) is True
        assert storage.delete_record(target.id) is False
        assert storage.get_record(target.id) is None

        assert storage.clear() == 2
        assert storage.list_records() == []
        storage.close()


def test_date_range_accepts_iso_dates_only() -> None:
    r = DateRange.model_validate({"start": "2025-04-05", "end": "2025-04-30"})
    assert r.start == date(2025, 4, 5)
    assert r.end == date(2025, 4, 30)
    assert DateRange.model_validate({}).start is None
    with pytest.raises(ValidationError):
        DateRange.model_validate({"start": "2025-4-5"})


def test_date_is_unique_in_store() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        storage = Storage(Path(tmp) / "metrics_test.db")
        storage.create(_rec(5, weight=200))
        with pytest.raises(sqlite3.IntegrityError):
            storage.create(_rec(5, weight=201))
        with pytest.raises(KeyError):
            storage.update("rec_missing", _rec(5, weight=1))
        storage.close()
