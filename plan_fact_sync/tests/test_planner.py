import math
import sys
import unittest
from pathlib import Path


SERVICE_DIR = Path(__file__).resolve().parents[1]
if str(SERVICE_DIR) not in sys.path:
    sys.path.insert(0, str(SERVICE_DIR))

import grid_index  # noqa: E402
import planner  # noqa: E402
from grid_index import PeriodColumns  # noqa: E402
from metrics_api import MetricRecord  # noqa: E402


def _indices():
    periods = grid_index.index_header(
        ["", "", "янв.2024", "", "февр.2024", ""],
        ["", "", "п", "ф", "п", "ф"],
        first_column=2,
    )
    rows = grid_index.index_rows([["Alpha"], [""], ["Beta"]], data_first_row=8)
    return periods, rows


class PlanUpdatesTests(unittest.TestCase):
    def test_record_resolves_to_plan_and_fact_cells(self):
        periods, rows = _indices()
        records = [MetricRecord("Alpha", 2024, 1, 100, 90)]

        updates = planner.plan_updates("ВА", records, periods, rows)

        self.assertEqual(
            updates,
            [
                planner.CellUpdate("ВА", 4, 8, 100),
                planner.CellUpdate("ВА", 5, 8, 90),
            ],
        )
        self.assertEqual([u.a1 for u in updates], ["'ВА'!D8", "'ВА'!E8"])
        self.assertEqual(
            updates[0].as_value_range(), {"range": "'ВА'!D8", "values": [[100]]}
        )

    def test_unknown_period_or_object_is_skipped(self):
        periods, rows = _indices()
        records = [
            MetricRecord("Alpha", 2023, 12, 1, 2),
            MetricRecord("Gamma", 2024, 1, 3, 4),
            MetricRecord("Beta", 2024, 2, 5, 6),
        ]

        updates = planner.plan_updates("ВА", records, periods, rows)

        self.assertEqual(
            updates,
            [
                planner.CellUpdate("ВА", 6, 10, 5),
                planner.CellUpdate("ВА", 7, 10, 6),
            ],
        )

    def test_missing_type_column_emits_the_other_only(self):
        rows = {"Alpha": 8}
        only_fact = {(2024, 3): PeriodColumns(fact_column=9)}
        only_plan = {(2024, 3): PeriodColumns(plan_column=8)}
        record = MetricRecord("Alpha", 2024, 3, 10, 20)

        self.assertEqual(
            planner.plan_updates("Б", [record], only_fact, rows),
            [planner.CellUpdate("Б", 9, 8, 20)],
        )
        self.assertEqual(
            planner.plan_updates("Б", [record], only_plan, rows),
            [planner.CellUpdate("Б", 8, 8, 10)],
        )

    def test_planning_is_repeatable(self):
        periods, rows = _indices()
        records = [
            MetricRecord("Alpha", 2024, 1, 100, 90),
            MetricRecord("Beta", 2024, 2, 1.5, 2.5),
        ]
        first = planner.plan_updates("ВА", records, periods, rows)
        second = planner.plan_updates("ВА", records, periods, rows)
        self.assertEqual(first, second)
        self.assertEqual(len(first), 4)

    def test_values_pass_through_and_duplicates_are_kept(self):
        periods, rows = _indices()
        records = [
            MetricRecord("Alpha", 2024, 1, -5, float("nan")),
            MetricRecord("Alpha", 2024, 1, 7, 8),
        ]

        updates = planner.plan_updates("ВА", records, periods, rows)

        self.assertEqual(len(updates), 4)
        self.assertEqual(updates[0].value, -5)
        self.assertTrue(math.isnan(updates[1].value))
        self.assertEqual([u.value for u in updates[2:]], [7, 8])
        self.assertEqual(updates[0].a1, updates[2].a1)

    def test_no_records_no_updates(self):
        periods, rows = _indices()
        self.assertEqual(planner.plan_updates("ВА", [], periods, rows), [])


if __name__ == "__main__":
    unittest.main()
