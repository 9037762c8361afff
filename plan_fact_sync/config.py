import json
import os
from dataclasses import dataclass, field
from typing import Callable, List

from grid_index import DuplicatePolicy, GridLayout


GRID_BACKENDS = {"google", "xlsx"}


@dataclass(frozen=True)
class SheetRule:
    prefix: str
    sheet: str


@dataclass(frozen=True)
class Settings:
    internal_api_url: str
    spreadsheet_id: str
    host: str
    port: int
    grid_range: str
    header_rows: int
    plan_marker: str
    fact_marker: str
    sheet_rules: List[SheetRule]
    default_sheet: str
    duplicate_policy: DuplicatePolicy
    grid_backend: str
    google_sa_json: str = field(default="", repr=False)
    google_sa_file: str = ""
    use_env_proxy: bool = False
    request_timeout_seconds: int = 60
    interval_minutes: int = 60
    run_once: bool = False
    log_level: str = "INFO"

    @property
    def layout(self) -> GridLayout:
        return GridLayout.from_range(self.grid_range, header_rows=self.header_rows)

    def missing_required(self) -> List[str]:
        missing: List[str] = []
        if not self.internal_api_url:
            missing.append("INTERNAL_API_URL")
        if not self.spreadsheet_id:
            missing.append("SPREADSHEET_ID")
        return missing

    def classifier(self) -> Callable[[str], str]:
        rules = list(self.sheet_rules)
        default_sheet = self.default_sheet

        def classify(object_name: str) -> str:
            for rule in rules:
                if object_name.startswith(rule.prefix):
                    return rule.sheet
            return default_sheet

        return classify


def _to_bool(value: str, default: bool = False) -> bool:
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default


def _default_rules() -> List[SheetRule]:
    return [SheetRule(prefix="Б", sheet="Б")]


def _load_rules(raw: str) -> List[SheetRule]:
    if not raw.strip():
        return _default_rules()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid SYNC_SHEET_RULES_JSON: {exc}") from exc
    if not isinstance(data, list):
        raise ValueError("SYNC_SHEET_RULES_JSON must be a JSON array")

    rules: List[SheetRule] = []
    for item in data:
        if not isinstance(item, dict):
            raise ValueError("SYNC_SHEET_RULES_JSON items must be objects")
        prefix = str(item.get("prefix") or "")
        sheet = str(item.get("sheet") or "").strip()
        if not prefix or not sheet:
            raise ValueError(
                f"SYNC_SHEET_RULES_JSON item needs prefix and sheet: {item!r}"
            )
        rules.append(SheetRule(prefix=prefix, sheet=sheet))
    return rules


def load_settings() -> Settings:
    grid_range = str(os.environ.get("SYNC_GRID_RANGE", "B6:BB10") or "B6:BB10").strip()
    header_rows = int(os.environ.get("SYNC_HEADER_ROWS", "2") or 2)
    # Fail at startup on a bad range rather than on the first pass.
    GridLayout.from_range(grid_range, header_rows=header_rows)

    grid_backend = str(os.environ.get("SYNC_GRID_BACKEND", "google") or "google")
    grid_backend = grid_backend.strip().lower()
    if grid_backend not in GRID_BACKENDS:
        raise ValueError(
            f"SYNC_GRID_BACKEND must be one of {sorted(GRID_BACKENDS)}, got {grid_backend!r}"
        )

    plan_marker = str(os.environ.get("SYNC_PLAN_MARKER", "п") or "п").strip().lower()
    fact_marker = str(os.environ.get("SYNC_FACT_MARKER", "ф") or "ф").strip().lower()
    if plan_marker == fact_marker:
        raise ValueError("SYNC_PLAN_MARKER and SYNC_FACT_MARKER must differ")

    return Settings(
        internal_api_url=str(os.environ.get("INTERNAL_API_URL") or "").strip(),
        spreadsheet_id=str(os.environ.get("SPREADSHEET_ID") or "").strip(),
        host=str(os.environ.get("SYNC_HOST", "127.0.0.1")),
        port=int(os.environ.get("SYNC_PORT", "8095")),
        grid_range=grid_range,
        header_rows=header_rows,
        plan_marker=plan_marker,
        fact_marker=fact_marker,
        sheet_rules=_load_rules(str(os.environ.get("SYNC_SHEET_RULES_JSON") or "")),
        default_sheet=str(os.environ.get("SYNC_DEFAULT_SHEET", "ВА") or "ВА").strip(),
        duplicate_policy=DuplicatePolicy.parse(
            str(os.environ.get("SYNC_DUPLICATE_POLICY", "last") or "last")
        ),
        grid_backend=grid_backend,
        google_sa_json=str(os.environ.get("SYNC_GOOGLE_SA_JSON", "") or ""),
        google_sa_file=str(os.environ.get("SYNC_GOOGLE_SA_FILE", "") or "").strip(),
        use_env_proxy=_to_bool(str(os.environ.get("SYNC_USE_ENV_PROXY", "0")), False),
        request_timeout_seconds=max(
            int(os.environ.get("SYNC_HTTP_TIMEOUT_SECONDS", "60")), 5
        ),
        interval_minutes=max(int(os.environ.get("SYNC_INTERVAL_MIN", "60")), 1),
        run_once=_to_bool(str(os.environ.get("SYNC_ONCE", "0")), False),
        log_level=str(os.environ.get("SYNC_LOG_LEVEL", "INFO") or "INFO").strip().upper(),
    )
