import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from a1_notation import cell_ref
from grid_index import PeriodColumns, PeriodKey
from metrics_api import MetricRecord


logger = logging.getLogger("plan_fact_sync.planner")


@dataclass(frozen=True)
class CellUpdate:
    sheet: str
    column: int
    row: int
    value: Any

    @property
    def a1(self) -> str:
        return cell_ref(self.sheet, self.column, self.row)

    def as_value_range(self) -> Dict[str, Any]:
        return {"range": self.a1, "values": [[self.value]]}


def plan_updates(
    sheet: str,
    records: Iterable[MetricRecord],
    periods: Dict[PeriodKey, PeriodColumns],
    rows: Dict[str, int],
) -> List[CellUpdate]:
    """Turn records into single-cell writes; unresolvable records are skipped."""
    updates: List[CellUpdate] = []
    for record in records:
        columns = periods.get(record.period)
        row = rows.get(record.object_name)
        if columns is None or row is None:
            logger.debug(
                "skip %s %s-%s: missing %s",
                record.object_name,
                record.year,
                record.month,
                "column" if columns is None else "row",
            )
            continue
        if columns.plan_column is not None:
            updates.append(CellUpdate(sheet, columns.plan_column, row, record.plan))
        if columns.fact_column is not None:
            updates.append(CellUpdate(sheet, columns.fact_column, row, record.fact))
    return updates
