"""
Line-level parsing of decoded growth-record text.

Responsibilities:
- split into non-blank lines, keeping raw 1-based line numbers
- optional child-name metadata line
- mandatory header line
- per-row tokenizing across tab, comma or whitespace delimiters
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import ImportFailed
from .rules import CHILD_NAME_LABELS, HEADER_DATE_TOKENS

QUOTES = "\"'“”‘’"
COLONS = re.compile(r"[:：]")
NAME_LINE = re.compile(
    r"^\s*[" + re.escape(QUOTES) + r"]?\s*(?:"
    + "|".join(re.escape(label).replace(r"\ ", r"\s*") for label in CHILD_NAME_LABELS)
    + r")\s*[:：]",
    re.IGNORECASE,
)
# date (optionally followed by a time), numeric height, optional weight
WHITESPACE_ROW = re.compile(
    r"^(\S+(?:\s+\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?)?)\s+([-+]?\d+(?:\.\d+)?)(?:\s+(\S+))?$"
)


@dataclass
class Row:
    line: int
    raw: str
    tokens: List[str] = field(default_factory=list)


@dataclass
class TokenizedText:
    child_name: Optional[str]
    header_line: int
    first_data_line: Optional[int]
    rows: List[Row]


def strip_quotes(value: str) -> str:
    return value.strip().strip(QUOTES).strip()


def split_lines(text: str) -> List[tuple[int, str]]:
    """Non-blank, trimmed lines paired with their 1-based line number."""
    return [
        (number, line.strip())
        for number, line in enumerate(text.split("\n"), start=1)
        if line.strip()
    ]


def parse_child_name(line: str) -> Optional[str]:
    """Value after the last colon of a ``儿童姓名：...`` line, or None if not a name line."""
    if not NAME_LINE.match(line):
        return None
    value = strip_quotes(COLONS.split(line)[-1])
    return value or None


def is_header(line: str) -> bool:
    lowered = line.lower()
    return any(token in lowered for token in HEADER_DATE_TOKENS)


def tokenize_row(raw: str) -> List[str]:
    """
    Split one data row.

    Tab wins over comma, comma over whitespace; delimiters are never mixed
    within a row. Rows that fit none of them come back as a single token.
    """
    row = strip_quotes(raw)
    if "\t" in row:
        parts = row.split("\t")
    elif "," in row:
        parts = row.split(",")
    else:
        match = WHITESPACE_ROW.match(row)
        if match is None:
            return [row] if row else []
        parts = [part for part in match.groups() if part is not None]
    return [strip_quotes(part) for part in parts[:3]]


def tokenize_text(text: str) -> TokenizedText:
    """
    Find the metadata and header lines and tokenize every data row.

    Raises ImportFailed with a single ``format`` error when the input is empty
    or has no header row. Malformed data rows are left for validation.
    """
    lines = split_lines(text)
    if not lines:
        raise ImportFailed.single("format", "empty file")

    child_name = None
    position = 0
    if NAME_LINE.match(lines[0][1]):
        child_name = parse_child_name(lines[0][1])
        position = 1

    if position >= len(lines) or not is_header(lines[position][1]):
        line, value = lines[position] if position < len(lines) else (None, None)
        raise ImportFailed.single(
            "format",
            "no header row found; expected a line such as 日期,身高(cm),体重(kg)",
            line=line,
            value=value,
        )

    header_line = lines[position][0]
    rows = [Row(line=number, raw=line, tokens=tokenize_row(line)) for number, line in lines[position + 1:]]
    return TokenizedText(
        child_name=child_name,
        header_line=header_line,
        first_data_line=rows[0].line if rows else None,
        rows=rows,
    )
