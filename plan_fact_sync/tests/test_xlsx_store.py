import sys
import tempfile
import unittest
from pathlib import Path

import openpyxl  # type: ignore


SERVICE_DIR = Path(__file__).resolve().parents[1]
if str(SERVICE_DIR) not in sys.path:
    sys.path.insert(0, str(SERVICE_DIR))

import config  # noqa: E402
import sync_service  # noqa: E402
import xlsx_store  # noqa: E402
from grid_index import DuplicatePolicy  # noqa: E402
from metrics_api import MetricRecord  # noqa: E402


def _write_report(path: Path) -> None:
    wb = openpyxl.Workbook()
    sh = wb.active
    sh.title = "ВА"
    # Rectangle starts at B6: year/month band, type band, then objects.
    sh["D6"] = "янв.2024"
    sh["F6"] = "февр.2024"
    for ref, marker in (("D7", "п"), ("E7", "ф"), ("F7", "п"), ("G7", "ф")):
        sh[ref] = marker
    sh["B8"] = "Alpha"
    sh["B10"] = "Beta"
    other = wb.create_sheet("Б")
    other["D6"] = "янв.2024"
    other["D7"] = "п"
    other["E7"] = "ф"
    other["B8"] = "Б-1"
    wb.save(path)


class XlsxGridStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "report.xlsx"
        _write_report(self.path)
        self.store = xlsx_store.XlsxGridStore()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_values_get_trims_like_the_api(self):
        values = self.store.values_get(str(self.path), "'ВА'!B6:G10")
        self.assertEqual(
            values,
            [
                ["", "", "янв.2024", "", "февр.2024"],
                ["", "", "п", "ф", "п", "ф"],
                ["Alpha"],
                [],
                ["Beta"],
            ],
        )

    def test_batch_update_coerces_numeric_text(self):
        result = self.store.values_batch_update(
            str(self.path),
            [
                {"range": "'ВА'!D8", "values": [["100"]]},
                {"range": "'ВА'!E8", "values": [["12.5"]]},
                {"range": "'ВА'!F8", "values": [["n/a"]]},
                {"range": "'Б'!D8", "values": [[7]]},
            ],
        )

        self.assertEqual(result, {"totalUpdatedCells": 4})
        wb = openpyxl.load_workbook(self.path)
        self.assertEqual(wb["ВА"]["D8"].value, 100)
        self.assertEqual(wb["ВА"]["E8"].value, 12.5)
        self.assertEqual(wb["ВА"]["F8"].value, "n/a")
        self.assertEqual(wb["Б"]["D8"].value, 7)

    def test_raw_input_keeps_text(self):
        self.store.values_batch_update(
            str(self.path),
            [{"range": "'ВА'!D8", "values": [["100"]]}],
            value_input_option="RAW",
        )
        wb = openpyxl.load_workbook(self.path)
        self.assertEqual(wb["ВА"]["D8"].value, "100")

    def test_non_finite_and_odd_numeric_text_stay_text(self):
        self.store.values_batch_update(
            str(self.path),
            [
                {"range": "'ВА'!D8", "values": [[float("nan")]]},
                {"range": "'ВА'!E8", "values": [["NaN"]]},
                {"range": "'ВА'!F8", "values": [["1_000"]]},
            ],
        )
        wb = openpyxl.load_workbook(self.path)
        self.assertEqual(wb["ВА"]["D8"].value, "nan")
        self.assertEqual(wb["ВА"]["E8"].value, "NaN")
        self.assertEqual(wb["ВА"]["F8"].value, "1_000")

    def test_unknown_sheet_writes_nothing(self):
        with self.assertRaises(xlsx_store.XlsxStoreError):
            self.store.values_batch_update(
                str(self.path),
                [
                    {"range": "'ВА'!D8", "values": [[1]]},
                    {"range": "'Нет'!D8", "values": [[2]]},
                ],
            )
        wb = openpyxl.load_workbook(self.path)
        self.assertIsNone(wb["ВА"]["D8"].value)

    def test_missing_workbook(self):
        with self.assertRaises(xlsx_store.XlsxStoreError):
            self.store.values_get(str(self.path.with_name("nope.xlsx")), "'ВА'!B6:G10")

    def test_empty_batch_does_not_touch_the_file(self):
        before = self.path.stat().st_mtime_ns
        self.assertEqual(
            self.store.values_batch_update(str(self.path), []),
            {"totalUpdatedCells": 0},
        )
        self.assertEqual(self.path.stat().st_mtime_ns, before)

    def test_full_pass_against_workbook(self):
        settings = config.Settings(
            internal_api_url="http://metrics.local/records",
            spreadsheet_id=str(self.path),
            host="127.0.0.1",
            port=8095,
            grid_range="B6:BB10",
            header_rows=2,
            plan_marker="п",
            fact_marker="ф",
            sheet_rules=[config.SheetRule(prefix="Б", sheet="Б")],
            default_sheet="ВА",
            duplicate_policy=DuplicatePolicy.LAST_WINS,
            grid_backend="xlsx",
        )

        class _Api:
            def fetch_records(self):
                return [
                    MetricRecord("Alpha", 2024, 1, 100, 90),
                    MetricRecord("Beta", 2024, 2, 5, 6),
                    MetricRecord("Б-1", 2024, 1, 1, 2),
                    MetricRecord("Gamma", 2024, 1, 3, 4),
                ]

        service = sync_service.PlanFactSync(
            settings, sync_service.build_grid_store(settings), _Api()
        )
        summary = service.synchronize()

        self.assertEqual(summary["updatedSheets"], ["ВА", "Б"])
        self.assertEqual(summary["sheets"][0]["skipped"], 1)
        wb = openpyxl.load_workbook(self.path)
        self.assertEqual(wb["ВА"]["D8"].value, 100)
        self.assertEqual(wb["ВА"]["E8"].value, 90)
        self.assertEqual(wb["ВА"]["F10"].value, 5)
        self.assertEqual(wb["ВА"]["G10"].value, 6)
        self.assertEqual(wb["Б"]["D8"].value, 1)
        self.assertEqual(wb["Б"]["E8"].value, 2)


if __name__ == "__main__":
    unittest.main()
