"""Tokenizer and format detection for smart-scale CSV exports."""

import pytest

from scalesync.ingest import UnrecognizedFormatError, detect_format, parse_csv


def test_quoted_timestamp_with_comma_is_one_field() -> None:
    content = 'Time,Weight,Body Fat\n"4/5/2025, 8:43 AM",180.2lb,22.1%\n'
    rows = parse_csv(content)
    assert len(rows) == 1
    assert rows[0]["Time"] == "4/5/2025, 8:43 AM"
    assert rows[0]["Weight"] == "180.2lb"
    assert rows[0]["Body Fat"] == "22.1%"


def test_quote_characters_are_stripped() -> None:
    rows = parse_csv('Time,Weight\n"4/5/2025, 8:43 AM","180lb"\n')
    assert rows[0]["Weight"] == "180lb"
    assert '"' not in rows[0]["Time"]


def test_blank_lines_skipped_and_crlf_handled() -> None:
    content = "Date,Weight,BMI\r\n\r\n04-05-25,180,25\r\n   \r\n04-06-25,181,25.1\r\n"
    rows = parse_csv(content)
    assert [r["Date"] for r in rows] == ["04-05-25", "04-06-25"]
    assert rows[1]["BMI"] == "25.1"


def test_empty_and_header_only_input_yield_no_rows() -> None:
    assert parse_csv("") == []
    assert parse_csv("   \n\n  ") == []
    assert parse_csv("Time,Weight,Body Fat\n") == []


def test_short_row_is_padded_and_long_row_truncated() -> None:
    rows = parse_csv("a,b,c\n1,2\n4,5,6,7\n")
    assert rows[0] == {"a": "1", "b": "2", "c": ""}
    assert rows[1] == {"a": "4", "b": "5", "c": "6"}


def test_unbalanced_quote_does_not_swallow_next_row() -> None:
    rows = parse_csv('Time,Weight\n"4/5/2025, 8:43 AM,180lb\n4/6/2025,181lb\n')
    assert len(rows) == 2
    assert rows[1] == {"Time": "4/6/2025", "Weight": "181lb"}


def test_values_and_headers_are_trimmed_and_bom_removed() -> None:
    rows = parse_csv("\ufeffDate , Weight\n 04-05-25 ,  180 \n")
    assert rows == [{"Date": "04-05-25", "Weight": "180"}]


def test_detect_raw_format() -> None:
    header = "Time,Weight,BMI,Body Fat,Fat-Free Body Weight,Subcutaneous Fat,Visceral Fat\n"
    assert detect_format(header + '"4/5/2025, 8:43 AM",180lb,25,22%,140lb,19%,9\n') == "raw"


def test_detect_processed_format() -> None:
    assert detect_format("Date,Weight,BMI,Body Fat %\n04-05-25,180,25,22\n") == "processed"


def test_detect_uses_header_line_only() -> None:
    # "Time" and "Body Fat" only appear in the body
    with pytest.raises(UnrecognizedFormatError):
        detect_format("exercise,weight,reps\nTime,Body Fat,1\n")


def test_unknown_header_is_rejected_with_clear_message() -> None:
    with pytest.raises(UnrecognizedFormatError) as exc:
        detect_format("exercise,weight,reps\nBench Press,135,5\n")
    assert "Unrecognized CSV format" in str(exc.value)


def test_empty_content_is_not_a_recognized_format() -> None:
    with pytest.raises(UnrecognizedFormatError):
        detect_format("")


def test_quote_inside_a_field_toggles_and_is_dropped() -> None:
    rows = parse_csv('Time,Note,Weight\n4/5/2025,ab"c,d"e,180lb\n')
    assert rows == [{"Time": "4/5/2025", "Note": "abc,de", "Weight": "180lb"}]


def test_doubled_quotes_leave_no_quote_characters() -> None:
    rows = parse_csv('Time,Note\n4/5/2025,"a""b"\n')
    assert rows[0]["Note"] == "ab"


def test_no_value_keeps_a_quote_character() -> None:
    rows = parse_csv('Time,Note,Weight\n4/5/2025,5\'10",180lb\n"4/6/2025, 7:00 AM","x",181lb\n')
    assert len(rows) == 2
    assert all('"' not in v for row in rows for v in row.values())
    assert rows[1]["Time"] == "4/6/2025, 7:00 AM"
