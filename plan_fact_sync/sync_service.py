import logging
import threading
from dataclasses import asdict, dataclass
from http import HTTPStatus
from typing import Any, Callable, Dict, Iterable, List, Optional

from a1_notation import sheet_range
from config import Settings
from google_sheets import GoogleSheetsClient, GoogleSheetsError
from grid_index import LayoutError, index_grid, normalize_grid
from metrics_api import MetricRecord, MetricsApi, MetricsApiError
from planner import plan_updates
from xlsx_store import XlsxGridStore, XlsxStoreError


logger = logging.getLogger("plan_fact_sync.sync")

SUCCESS_MESSAGE = "Data successfully written to Google Sheet"

GRID_STORE_ERRORS = (GoogleSheetsError, XlsxStoreError, OSError)


class SyncError(RuntimeError):
    status = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, applied: Optional[List[str]] = None):
        super().__init__(message)
        self.applied = list(applied or [])


class ConfigError(SyncError):
    status = HTTPStatus.INTERNAL_SERVER_ERROR


class UpstreamError(SyncError):
    status = HTTPStatus.BAD_GATEWAY


class SheetSyncError(SyncError):
    status = HTTPStatus.BAD_GATEWAY

    def __init__(self, sheet: str, message: str, applied: List[str]):
        super().__init__(f"[{sheet}] {message}", applied=applied)
        self.sheet = sheet


@dataclass
class SheetResult:
    sheet: str
    records: int
    cells: int
    skipped: int


def route_records(
    records: Iterable[MetricRecord], classify: Callable[[str], str]
) -> Dict[str, List[MetricRecord]]:
    """Group records by target sheet; dict order is the flush order."""
    groups: Dict[str, List[MetricRecord]] = {}
    for record in records:
        groups.setdefault(classify(record.object_name), []).append(record)
    return groups


def build_grid_store(settings: Settings) -> Any:
    if settings.grid_backend == "xlsx":
        return XlsxGridStore()
    return GoogleSheetsClient.from_credentials(
        raw_json=settings.google_sa_json,
        path=settings.google_sa_file,
        use_env_proxy=settings.use_env_proxy,
        timeout_seconds=settings.request_timeout_seconds,
    )


class PlanFactSync:
    def __init__(
        self,
        settings: Settings,
        grid_store: Any,
        metrics_api: Optional[MetricsApi] = None,
    ):
        self.settings = settings
        self.grid_store = grid_store
        self.metrics_api = metrics_api or MetricsApi(
            settings.internal_api_url,
            timeout_seconds=settings.request_timeout_seconds,
            use_env_proxy=settings.use_env_proxy,
        )
        self.layout = settings.layout
        self.classify = settings.classifier()
        self._lock = threading.Lock()

    def _fetch(self) -> List[MetricRecord]:
        try:
            return self.metrics_api.fetch_records()
        except MetricsApiError as exc:
            raise UpstreamError(f"Failed to fetch from internal API: {exc}") from exc

    def sync_sheet(self, sheet: str, records: List[MetricRecord]) -> SheetResult:
        settings = self.settings
        values = self.grid_store.values_get(
            settings.spreadsheet_id, sheet_range(sheet, settings.grid_range)
        )
        grid = normalize_grid(values, self.layout)
        periods, rows = index_grid(
            grid,
            self.layout,
            plan_marker=settings.plan_marker,
            fact_marker=settings.fact_marker,
            policy=settings.duplicate_policy,
        )
        logger.debug("[%s] periods=%s rows=%s", sheet, periods, rows)

        updates = plan_updates(sheet, records, periods, rows)
        skipped = sum(
            1
            for record in records
            if record.period not in periods or record.object_name not in rows
        )
        if updates:
            logger.info("[%s] sending batch update with %s cells", sheet, len(updates))
            self.grid_store.values_batch_update(
                settings.spreadsheet_id,
                [update.as_value_range() for update in updates],
                value_input_option="USER_ENTERED",
            )
        else:
            logger.info("[%s] no updates to send", sheet)
        return SheetResult(
            sheet=sheet, records=len(records), cells=len(updates), skipped=skipped
        )

    def synchronize(self) -> Dict[str, Any]:
        missing = self.settings.missing_required()
        if missing:
            raise ConfigError(f"{', '.join(missing)} is not defined in the config")

        with self._lock:
            records = self._fetch()
            groups = route_records(records, self.classify)
            logger.info(
                "grouped %s records into sheets %s",
                len(records),
                {sheet: len(items) for sheet, items in groups.items()},
            )

            applied: List[str] = []
            results: List[SheetResult] = []
            for sheet, sheet_records in groups.items():
                logger.info("processing sheet %s", sheet)
                try:
                    result = self.sync_sheet(sheet, sheet_records)
                except LayoutError as exc:
                    logger.error("[%s] layout rejected: %s", sheet, exc)
                    raise SheetSyncError(
                        sheet, f"sheet layout rejected: {exc}", applied
                    ) from exc
                except GRID_STORE_ERRORS as exc:
                    logger.error("[%s] sync failed, applied %s: %s", sheet, applied, exc)
                    raise SheetSyncError(sheet, str(exc), applied) from exc
                applied.append(sheet)
                results.append(result)
                logger.info(
                    "[%s] updated %s cells, skipped %s records",
                    sheet,
                    result.cells,
                    result.skipped,
                )

        return {
            "message": SUCCESS_MESSAGE,
            "updatedSheets": applied,
            "sheets": [asdict(item) for item in results],
        }
