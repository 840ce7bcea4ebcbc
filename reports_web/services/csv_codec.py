"""
Delimited-text artifact dialect shared by the run writer and the page reader.

Write side: comma separated, a field is quoted when it holds a comma, a double
quote, CR or LF; embedded quotes are doubled; every record ends with "\\n".

Read side: CsvRecordReader walks the stream one character at a time through an
explicit state machine. It is lenient on purpose: a quote that appears after
unquoted text is kept as a literal character instead of being rejected, so it
is NOT a strict RFC4180 parser.
"""
from __future__ import annotations

import io
from enum import Enum
from typing import Iterable, Iterator, Optional, Sequence, TextIO

DELIMITER = ","
QUOTE = '"'
NEWLINE = "\n"
_NEEDS_QUOTES = (DELIMITER, QUOTE, "\n", "\r")


# -----------------------------
# Writer
# -----------------------------
def escape_field(value: Optional[str]) -> str:
    value = value or ""
    if any(ch in value for ch in _NEEDS_QUOTES):
        return QUOTE + value.replace(QUOTE, QUOTE + QUOTE) + QUOTE
    return value


def encode_record(values: Sequence[Optional[str]]) -> str:
    return DELIMITER.join(escape_field(v) for v in values) + NEWLINE


def encode_table(headers: Sequence[str], rows: Iterable[Sequence[Optional[str]]]) -> str:
    buf = io.StringIO()
    buf.write(encode_record(headers))
    for row in rows:
        buf.write(encode_record(row))
    return buf.getvalue()


# -----------------------------
# Reader
# -----------------------------
class ReaderState(Enum):
    FIELD_START = "field_start"
    IN_FIELD = "in_field"
    IN_QUOTED_FIELD = "in_quoted_field"
    QUOTE_SEEN_IN_QUOTED = "quote_seen_in_quoted"


class CsvRecordReader:
    """
    Reads one record per read_record() call from a text stream.
    Returns None once the stream is exhausted; a final record without a
    trailing newline is still returned.
    """

    def __init__(self, stream: TextIO):
        self._stream = stream

    @classmethod
    def from_text(cls, text: str) -> "CsvRecordReader":
        return cls(io.StringIO(text, newline=""))

    def __iter__(self) -> Iterator[list[str]]:
        while True:
            record = self.read_record()
            if record is None:
                return
            yield record

    def read_record(self) -> Optional[list[str]]:
        fields: list[str] = []
        buf: list[str] = []
        state = ReaderState.FIELD_START
        started = False

        while True:
            ch = self._stream.read(1)

            if state is ReaderState.QUOTE_SEEN_IN_QUOTED:
                if ch == QUOTE:
                    buf.append(QUOTE)
                    started = True
                    state = ReaderState.IN_QUOTED_FIELD
                    continue
                # closing quote; the current character is handled unquoted below
                state = ReaderState.IN_FIELD if buf else ReaderState.FIELD_START

            if ch == "":
                if not started and not buf and not fields:
                    return None
                fields.append("".join(buf))
                return fields

            if ch == "\r":
                continue

            if state is ReaderState.IN_QUOTED_FIELD:
                if ch == QUOTE:
                    state = ReaderState.QUOTE_SEEN_IN_QUOTED
                else:
                    buf.append(ch)
                    started = True
                continue

            if ch == NEWLINE:
                fields.append("".join(buf))
                return fields

            if ch == DELIMITER:
                fields.append("".join(buf))
                buf = []
                started = False
                state = ReaderState.FIELD_START
                continue

            if ch == QUOTE and state is ReaderState.FIELD_START:
                state = ReaderState.IN_QUOTED_FIELD
                started = True
                continue

            # unquoted text, including a quote that follows other characters
            buf.append(ch)
            started = True
            state = ReaderState.IN_FIELD


def decode_text(text: str) -> list[list[str]]:
    return list(CsvRecordReader.from_text(text))
