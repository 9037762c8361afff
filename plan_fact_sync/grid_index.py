"""Index a plan/fact sheet rectangle.

The rectangle read from a sheet looks like this (B6:BB10 by default)::

    |        | янв.2024 |     | февр.2024 |     |
    |        | п        | ф   | п         | ф   |
    | Alpha  | ...      | ... | ...       | ... |

Year/month cells are merged over their plan/fact sub-columns, so the API
returns them only in the leftmost sub-column and blanks elsewhere.
``index_header`` resolves every plan/fact column to its (year, month) and
``index_rows`` maps object names to absolute sheet rows. Both are pure.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from a1_notation import (
    month_number,
    parse_leading_int,
    parse_range,
    split_period_label,
)


logger = logging.getLogger("plan_fact_sync.grid_index")

PeriodKey = Tuple[int, int]

PLAN = "plan"
FACT = "fact"


class LayoutError(ValueError):
    pass


class DuplicatePolicy(str, Enum):
    LAST_WINS = "last"
    FIRST_WINS = "first"
    REJECT = "reject"

    @classmethod
    def parse(cls, raw: str) -> "DuplicatePolicy":
        text = str(raw or "").strip().lower()
        for item in cls:
            if item.value == text:
                return item
        raise ValueError(
            f"unknown duplicate policy {raw!r}, expected one of: last, first, reject"
        )


@dataclass
class PeriodColumns:
    plan_column: Optional[int] = None
    fact_column: Optional[int] = None


@dataclass(frozen=True)
class GridLayout:
    first_column: int
    first_row: int
    last_column: int
    last_row: int
    header_rows: int = 2

    @classmethod
    def from_range(cls, a1_range: str, header_rows: int = 2) -> "GridLayout":
        first_col, first_row, last_col, last_row = parse_range(a1_range)
        if header_rows < 2:
            raise ValueError("grid needs a year/month row and a type row")
        if last_row - first_row + 1 < header_rows:
            raise ValueError(f"range {a1_range!r} is shorter than the header band")
        return cls(
            first_column=first_col,
            first_row=first_row,
            last_column=last_col,
            last_row=last_row,
            header_rows=header_rows,
        )

    @property
    def width(self) -> int:
        return self.last_column - self.first_column + 1

    @property
    def height(self) -> int:
        return self.last_row - self.first_row + 1

    @property
    def data_first_row(self) -> int:
        return self.first_row + self.header_rows


def _text(cell: Any) -> str:
    if cell is None:
        return ""
    return str(cell).strip()


def normalize_grid(values: Any, layout: GridLayout) -> List[List[str]]:
    """Pad the ragged API payload into a layout.height x layout.width table."""
    rows = values if isinstance(values, list) else []
    out: List[List[str]] = []
    for idx in range(layout.height):
        raw = rows[idx] if idx < len(rows) and isinstance(rows[idx], list) else []
        cells = [_text(cell) for cell in raw[: layout.width]]
        cells.extend([""] * (layout.width - len(cells)))
        out.append(cells)
    return out


def _store(
    target: Dict[Any, Any],
    key: Any,
    value: Any,
    policy: DuplicatePolicy,
    what: str,
) -> None:
    if key in target:
        if policy is DuplicatePolicy.FIRST_WINS:
            logger.debug("keep first %s for %s, ignore %s", what, key, value)
            return
        if policy is DuplicatePolicy.REJECT:
            raise LayoutError(f"duplicate {what} for {key}: {target[key]} and {value}")
        logger.debug("override %s for %s: %s -> %s", what, key, target[key], value)
    target[key] = value


def _period_label(year_row: Sequence[Any], idx: int) -> str:
    for j in range(min(idx, len(year_row) - 1), -1, -1):
        text = _text(year_row[j])
        if text:
            return text
    return ""


def index_header(
    year_row: Sequence[Any],
    type_row: Sequence[Any],
    first_column: int,
    plan_marker: str = "п",
    fact_marker: str = "ф",
    policy: DuplicatePolicy = DuplicatePolicy.LAST_WINS,
) -> Dict[PeriodKey, PeriodColumns]:
    plan_marker = plan_marker.strip().lower()
    fact_marker = fact_marker.strip().lower()
    slots: Dict[Tuple[PeriodKey, str], int] = {}

    for idx, cell in enumerate(type_row):
        marker = _text(cell).lower()
        if marker == plan_marker:
            kind = PLAN
        elif marker == fact_marker:
            kind = FACT
        else:
            continue

        label = _period_label(year_row, idx)
        if not label:
            logger.debug("column %s: no year/month label to the left", idx)
            continue
        month_token, year_token = split_period_label(label)
        if not month_token or not year_token:
            logger.debug("column %s: cannot split label %r", idx, label)
            continue
        month = month_number(month_token)
        if month == 0:
            logger.debug("column %s: unknown month %r", idx, month_token)
            continue
        year = parse_leading_int(year_token)
        if year is None:
            logger.debug("column %s: non-numeric year %r", idx, year_token)
            continue

        _store(slots, ((year, month), kind), first_column + idx, policy, f"{kind} column")

    index: Dict[PeriodKey, PeriodColumns] = {}
    for (key, kind), column in slots.items():
        entry = index.setdefault(key, PeriodColumns())
        if kind == PLAN:
            entry.plan_column = column
        else:
            entry.fact_column = column
    return index


def index_rows(
    data_rows: Sequence[Sequence[Any]],
    data_first_row: int,
    policy: DuplicatePolicy = DuplicatePolicy.LAST_WINS,
) -> Dict[str, int]:
    rows: Dict[str, int] = {}
    for offset, row in enumerate(data_rows):
        name = _text(row[0]) if row else ""
        if not name:
            continue
        _store(rows, name, data_first_row + offset, policy, "object row")
    return rows


def index_grid(
    grid: List[List[str]],
    layout: GridLayout,
    plan_marker: str = "п",
    fact_marker: str = "ф",
    policy: DuplicatePolicy = DuplicatePolicy.LAST_WINS,
) -> Tuple[Dict[PeriodKey, PeriodColumns], Dict[str, int]]:
    year_row = grid[0] if len(grid) > 0 else []
    # Type band is the last header row; rows between are decorative.
    type_row = grid[layout.header_rows - 1] if len(grid) >= layout.header_rows else []
    periods = index_header(
        year_row,
        type_row,
        layout.first_column,
        plan_marker=plan_marker,
        fact_marker=fact_marker,
        policy=policy,
    )
    rows = index_rows(grid[layout.header_rows :], layout.data_first_row, policy=policy)
    return periods, rows
