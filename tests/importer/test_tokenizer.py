from __future__ import annotations

import pytest

from flask_app.importer.pipeline.tokenizer import (
    iter_rows,
    normalize_delimiter,
    normalize_line_endings,
    read_row,
    serialize_row,
)


def test_read_row_returns_cursor_of_next_row():
    buffer = "a,b\nc,d\n"
    row, position = read_row(buffer)
    assert row == ["a", "b"]
    assert position == 4

    row, position = read_row(buffer, position)
    assert row == ["c", "d"]
    assert position == len(buffer)


def test_quoted_fields_keep_separators_and_line_breaks():
    rows = list(iter_rows('"Smith, John","line one\nline two",x\n'))
    assert rows == [["Smith, John", "line one\nline two", "x"]]


def test_doubled_quote_inside_quoted_field():
    assert list(iter_rows('"say ""hi""",b\n')) == [['say "hi"', "b"]]


def test_quote_followed_by_text_keeps_literal_quote():
    assert list(iter_rows('"a"b,c\n')) == [['a"b', "c"]]


def test_gaps_are_padded_and_trailing_unwritten_fields_are_absent():
    assert list(iter_rows("a,,b\n")) == [["a", "", "b"]]
    assert list(iter_rows("a,\n")) == [["a"]]
    assert list(iter_rows('"",x\n')) == [["", "x"]]


def test_blank_lines_come_back_as_empty_rows():
    assert list(iter_rows("a\n\n,\nb")) == [["a"], [], [], ["b"]]


def test_unterminated_quote_runs_to_end_of_buffer():
    assert list(iter_rows('x,"open\nstill open')) == [["x", "open\nstill open"]]


def test_custom_separator_and_enclosure():
    rows = list(iter_rows("'a;b';c\n", separator=";", enclosure="'"))
    assert rows == [["a;b", "c"]]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("\\t", "\t"), (";", ";"), ("", ","), (None, ",")],
)
def test_normalize_delimiter(raw, expected):
    assert normalize_delimiter(raw) == expected


def test_normalize_line_endings():
    assert list(iter_rows(normalize_line_endings("a,b\r\nc,d\r\n"))) == [["a", "b"], ["c", "d"]]


def test_serialized_rows_tokenize_back_to_the_same_fields():
    original = [["plain", "has,comma", 'has "quote"'], ["multi\nline", "", "end"]]
    text = "".join(serialize_row(row) for row in original)
    assert list(iter_rows(text)) == original


def test_serialize_row_quotes_only_when_needed():
    assert serialize_row(["a", "b c", None]) == "a,b c,\n"
    assert serialize_row(["a;b"], separator=";") == '"a;b"\n'
