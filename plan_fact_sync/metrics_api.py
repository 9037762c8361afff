import json
import logging
import math
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from a1_notation import coerce_numeric_text


logger = logging.getLogger("plan_fact_sync.metrics_api")

Number = Union[int, float]


class MetricsApiError(RuntimeError):
    pass


@dataclass(frozen=True)
class MetricRecord:
    object_name: str
    year: int
    month: int
    plan: Number
    fact: Number

    @property
    def period(self) -> Tuple[int, int]:
        return (self.year, self.month)


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    value = coerce_numeric_text(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


def parse_record(item: Any) -> Optional[MetricRecord]:
    if not isinstance(item, dict):
        return None
    name = item.get("ObjectName")
    if not isinstance(name, str) or not name.strip():
        return None
    year = _to_int(item.get("Year"))
    month = _to_int(item.get("Month"))
    if year is None or month is None:
        return None
    return MetricRecord(
        object_name=name,
        year=year,
        month=month,
        plan=coerce_numeric_text(item.get("Plan")),
        fact=coerce_numeric_text(item.get("Fact")),
    )


def _extract_rows(payload: Any) -> Optional[List[Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        result = payload.get("result")
        if isinstance(result, list):
            return result
    return None


def parse_records(payload: Any) -> List[MetricRecord]:
    rows = _extract_rows(payload)
    if rows is None:
        raise MetricsApiError(
            f"expected a list of records, got {type(payload).__name__}"
        )
    records: List[MetricRecord] = []
    dropped = 0
    for item in rows:
        record = parse_record(item)
        if record is None:
            dropped += 1
            continue
        records.append(record)
    if dropped:
        logger.warning("dropped %s malformed upstream records", dropped)
    return records


class MetricsApi:
    def __init__(
        self,
        url: str,
        timeout_seconds: int = 60,
        use_env_proxy: bool = False,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.url = str(url or "").strip()
        self.timeout_seconds = timeout_seconds
        self.headers = dict(headers or {})
        # Global HTTP(S)_PROXY is often broken on the hosts; ignore it unless asked.
        self._opener = (
            urllib.request.build_opener()
            if use_env_proxy
            else urllib.request.build_opener(urllib.request.ProxyHandler({}))
        )

    def _get_json(self) -> Any:
        if not self.url:
            raise MetricsApiError("metrics api url is not configured")
        req = urllib.request.Request(
            self.url,
            headers={"Accept": "application/json", **self.headers},
            method="GET",
        )
        try:
            with self._opener.open(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="ignore")
            raise MetricsApiError(f"HTTP {exc.code}: {body[:200]}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise MetricsApiError(str(getattr(exc, "reason", exc))) from exc
        if not raw:
            return []
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MetricsApiError(f"invalid JSON response: {raw[:200]!r}") from exc

    def fetch_records(self) -> List[MetricRecord]:
        records = parse_records(self._get_json())
        logger.info("fetched %s records from %s", len(records), self.url)
        return records
