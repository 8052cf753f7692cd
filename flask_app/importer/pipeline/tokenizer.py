"""
Streaming, quote-aware CSV row extraction.

Each call to :func:`read_row` consumes exactly one row from a buffer starting
at a cursor and returns the row plus the cursor of the next one. Nothing but
the buffer and the cursor is carried between rows, so a run can stop and pick
up again at any row boundary.
"""

from __future__ import annotations

import enum
from typing import Iterator, Sequence

TAB_ESCAPE = "\\t"


class _State(enum.Enum):
    UNQUOTED = "unquoted"
    QUOTED = "quoted"
    QUOTE_SEEN = "quote_seen"


def normalize_delimiter(delimiter: str | None, default: str = ",") -> str:
    """Return the delimiter to split on; the two characters ``\\t`` mean tab."""

    if not delimiter:
        return default
    return delimiter.replace(TAB_ESCAPE, "\t")


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n")


def read_row(
    buffer: str,
    start: int = 0,
    *,
    separator: str = ",",
    enclosure: str = '"',
    linebreak: str = "\n",
) -> tuple[list[str], int]:
    """
    Extract one row from ``buffer`` beginning at ``start``.

    Returns ``(row, next_start)``. The buffer is exhausted once
    ``next_start >= len(buffer)``. A quote left open at the end of the buffer
    ends the row. Field indexes that were never written but sit below the
    highest written index come back as empty strings; trailing fields that
    were never written are absent.
    """

    fields: dict[int, str] = {}
    state = _State.UNQUOTED
    column = 0
    position = start
    length = len(buffer)

    def append(text: str) -> None:
        fields[column] = fields.get(column, "") + text

    while position < length:
        char = buffer[position]
        position += 1

        if char == linebreak:
            if state is _State.QUOTED:
                append(char)
                continue
            break

        if char == separator:
            if state is _State.QUOTED:
                append(char)
                continue
            column += 1
            state = _State.UNQUOTED
            continue

        if char == enclosure:
            if state is _State.QUOTE_SEEN:
                # doubled quote inside a quoted field
                append(enclosure)
                state = _State.QUOTED
            elif state is _State.QUOTED:
                state = _State.QUOTE_SEEN
            else:
                state = _State.QUOTED
            continue

        if state is _State.QUOTE_SEEN:
            append(enclosure)
            state = _State.UNQUOTED
        append(char)

    if not fields:
        return [], position
    highest = max(fields)
    return [fields.get(index, "") for index in range(highest + 1)], position


def iter_rows(
    text: str,
    *,
    separator: str = ",",
    enclosure: str = '"',
    linebreak: str = "\n",
) -> Iterator[list[str]]:
    """Yield every row of ``text`` in order, including blank ones."""

    position = 0
    while position < len(text):
        row, position = read_row(
            text,
            position,
            separator=separator,
            enclosure=enclosure,
            linebreak=linebreak,
        )
        yield row


def serialize_row(
    row: Sequence[object],
    *,
    separator: str = ",",
    enclosure: str = '"',
    linebreak: str = "\n",
) -> str:
    """
    Write one row, quoting fields that contain the separator, the quote
    character or a line break. The result ends with ``linebreak``.
    """

    special = (separator, enclosure, linebreak, "\r")
    cells = []
    for value in row:
        text = "" if value is None else str(value)
        if any(token in text for token in special):
            text = enclosure + text.replace(enclosure, enclosure * 2) + enclosure
        cells.append(text)
    return separator.join(cells) + linebreak
