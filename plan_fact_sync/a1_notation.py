import math
import re
from typing import Any, Optional, Tuple


# Abbreviations as they appear in the merged header cells ("янв.2024").
MONTHS_RU = {
    "янв": 1,
    "февр": 2,
    "мар": 3,
    "апр": 4,
    "мая": 5,
    "июн": 6,
    "июл": 7,
    "авг": 8,
    "сент": 9,
    "окт": 10,
    "нояб": 11,
    "дек": 12,
}

_CELL_RE = re.compile(r"^([A-Za-z]+)(\d+)$")
_LEADING_INT_RE = re.compile(r"^[+-]?\d+")


def col_letter(col_num: int) -> str:
    n = int(col_num)
    if n < 1:
        raise ValueError(f"column number must be >= 1, got {col_num!r}")
    letters = ""
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def col_number(letters: str) -> int:
    text = str(letters or "").strip().upper()
    if not text or not text.isascii() or not text.isalpha():
        raise ValueError(f"invalid column letters: {letters!r}")
    n = 0
    for ch in text:
        n = n * 26 + (ord(ch) - 64)
    return n


def month_number(token: str) -> int:
    """Month 1-12 for a header abbreviation, 0 when it is not recognized."""
    return MONTHS_RU.get(str(token or "").strip().lower(), 0)


def parse_leading_int(token: str) -> Optional[int]:
    match = _LEADING_INT_RE.match(str(token or "").strip())
    if match is None:
        return None
    return int(match.group(0))


def split_period_label(label: str) -> Tuple[str, str]:
    parts = re.split(r"[.\s]+", str(label or "").strip())
    month_token = parts[0] if len(parts) > 0 else ""
    year_token = parts[1] if len(parts) > 1 else ""
    return month_token, year_token


def parse_cell(ref: str) -> Tuple[int, int]:
    """'BB10' -> (column 54, row 10)."""
    match = _CELL_RE.match(str(ref or "").strip())
    if match is None:
        raise ValueError(f"invalid cell reference: {ref!r}")
    row = int(match.group(2))
    if row < 1:
        raise ValueError(f"invalid cell reference: {ref!r}")
    return col_number(match.group(1)), row


def parse_range(a1_range: str) -> Tuple[int, int, int, int]:
    """'B6:BB10' -> (first_col, first_row, last_col, last_row)."""
    text = str(a1_range or "").strip()
    if "!" in text:
        text = text.rsplit("!", 1)[1]
    start, sep, end = text.partition(":")
    if not sep:
        raise ValueError(f"range must look like B6:BB10, got {a1_range!r}")
    first_col, first_row = parse_cell(start)
    last_col, last_row = parse_cell(end)
    if last_col < first_col or last_row < first_row:
        raise ValueError(f"range corners are reversed: {a1_range!r}")
    return first_col, first_row, last_col, last_row


def quote_sheet_title(title: str) -> str:
    # Sheet API ranges must single-quote titles with special characters.
    text = str(title or "")
    return "'" + text.replace("'", "''") + "'"


def sheet_range(sheet_name: str, a1_range: str) -> str:
    return f"{quote_sheet_title(sheet_name)}!{a1_range}"


def cell_ref(sheet_name: str, column: int, row: int) -> str:
    return sheet_range(sheet_name, f"{col_letter(column)}{int(row)}")


def unquote_sheet_range(a1: str) -> Tuple[str, str]:
    """"'ВА'!D8" -> ("ВА", "D8"); an unqualified range gives an empty title."""
    text = str(a1 or "").strip()
    if "!" not in text:
        return "", text
    title, ref = text.rsplit("!", 1)
    if len(title) >= 2 and title.startswith("'") and title.endswith("'"):
        title = title[1:-1].replace("''", "'")
    return title, ref


_NUMERIC_TEXT_RE = re.compile(r"^[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?$")
_INT_TEXT_RE = re.compile(r"^[+-]?[0-9]+$")


def coerce_numeric_text(value: Any) -> Any:
    """'100' -> 100, '12.5' -> 12.5; anything else comes back unchanged.

    Only plain ASCII decimal notation counts, and results that overflow to
    inf stay text.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not _NUMERIC_TEXT_RE.match(text):
        return value
    if _INT_TEXT_RE.match(text):
        return int(text)
    number = float(text)
    return number if math.isfinite(number) else value


def json_safe_value(value: Any) -> Any:
    # NaN/inf are not valid JSON; send them as text like the sheet would show.
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    return value
