"""Local workbook stand-in for the Google Sheets values API.

``spreadsheet_id`` is the workbook path. Handy for dry runs against an
exported copy of the report and for tests.
"""

import logging
import zipfile
from pathlib import Path
from typing import Any, Dict, List

import openpyxl  # type: ignore
from openpyxl.utils.exceptions import InvalidFileException  # type: ignore

from a1_notation import (
    coerce_numeric_text,
    json_safe_value,
    parse_cell,
    parse_range,
    unquote_sheet_range,
)


logger = logging.getLogger("plan_fact_sync.xlsx_store")


class XlsxStoreError(RuntimeError):
    pass


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class XlsxGridStore:
    def _load(self, path: str, read_only: bool) -> Any:
        if not Path(path).exists():
            raise XlsxStoreError(f"workbook not found: {path}")
        try:
            return openpyxl.load_workbook(
                path, read_only=read_only, data_only=read_only
            )
        except (InvalidFileException, zipfile.BadZipFile) as exc:
            raise XlsxStoreError(f"cannot open workbook {path}: {exc}") from exc

    @staticmethod
    def _sheet(wb: Any, title: str) -> Any:
        if title not in wb.sheetnames:
            raise XlsxStoreError(f"xlsx does not contain sheet {title!r}")
        return wb[title]

    def values_get(self, spreadsheet_id: str, a1_range: str) -> List[List[Any]]:
        title, ref = unquote_sheet_range(a1_range)
        first_col, first_row, last_col, last_row = parse_range(ref)
        wb = self._load(spreadsheet_id, read_only=True)
        try:
            sh = self._sheet(wb, title)
            rows: List[List[Any]] = []
            for row in sh.iter_rows(
                min_row=first_row,
                max_row=last_row,
                min_col=first_col,
                max_col=last_col,
                values_only=True,
            ):
                rows.append([_cell_text(value) for value in row])
        finally:
            wb.close()
        # The values API trims trailing blank rows and cells; mimic it.
        for row in rows:
            while row and row[-1] == "":
                row.pop()
        while rows and not rows[-1]:
            rows.pop()
        return rows

    def values_batch_update(
        self,
        spreadsheet_id: str,
        data: List[Dict[str, Any]],
        value_input_option: str = "USER_ENTERED",
    ) -> Dict[str, Any]:
        if not data:
            return {"totalUpdatedCells": 0}
        coerce = value_input_option == "USER_ENTERED"
        wb = self._load(spreadsheet_id, read_only=False)
        updated = 0
        for item in data:
            title, ref = unquote_sheet_range(str(item.get("range") or ""))
            column, row = parse_cell(ref)
            sh = self._sheet(wb, title)
            value = json_safe_value(item["values"][0][0])
            if coerce:
                value = coerce_numeric_text(value)
            sh.cell(row=row, column=column, value=value)
            updated += 1
        # Every cell is validated before anything reaches disk.
        wb.save(spreadsheet_id)
        logger.debug("saved %s cells to %s", updated, spreadsheet_id)
        return {"totalUpdatedCells": updated}
