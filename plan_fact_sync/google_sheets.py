import json
import logging
import urllib.parse
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from a1_notation import json_safe_value


logger = logging.getLogger("plan_fact_sync.google_sheets")

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"


class GoogleSheetsError(RuntimeError):
    pass


def load_service_account_info(raw_json: str = "", path: str = "") -> Optional[Dict[str, Any]]:
    raw = str(raw_json or "").strip()
    if raw:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return payload if isinstance(payload, dict) else None
    path = str(path or "").strip()
    if not path:
        return None
    try:
        with open(path, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except (OSError, json.JSONDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


@dataclass
class GoogleSheetsClient:
    service_account_info: Dict[str, Any] = field(repr=False)
    use_env_proxy: bool = False
    timeout_seconds: int = 60
    spreadsheet_scope: str = "https://www.googleapis.com/auth/spreadsheets"

    def __post_init__(self) -> None:
        # Late imports to keep module importable even without google-auth deps.
        from google.auth.transport.requests import AuthorizedSession
        from google.oauth2.service_account import Credentials

        creds = Credentials.from_service_account_info(
            self.service_account_info, scopes=[self.spreadsheet_scope]
        )
        self._session = AuthorizedSession(creds)
        if not self.use_env_proxy:
            self._session.trust_env = False

    @classmethod
    def from_credentials(
        cls,
        raw_json: str = "",
        path: str = "",
        use_env_proxy: bool = False,
        timeout_seconds: int = 60,
    ) -> "GoogleSheetsClient":
        info = load_service_account_info(raw_json, path)
        if not info:
            raise GoogleSheetsError(
                "Google service account is not configured. "
                "Set SYNC_GOOGLE_SA_JSON or SYNC_GOOGLE_SA_FILE."
            )
        return cls(
            service_account_info=info,
            use_env_proxy=use_env_proxy,
            timeout_seconds=timeout_seconds,
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        from google.auth.exceptions import GoogleAuthError

        try:
            resp = self._session.request(
                method, url, timeout=self.timeout_seconds, **kwargs
            )
        except (OSError, GoogleAuthError) as exc:
            # requests.RequestException is an OSError subclass.
            raise GoogleSheetsError(f"Google Sheets API request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise GoogleSheetsError(f"Google Sheets API {resp.status_code}: {resp.text}")
        if not resp.text:
            return {}
        return resp.json()

    def _get(self, url: str) -> Any:
        return self._request("GET", url)

    def _post(self, url: str, payload: Dict[str, Any]) -> Any:
        return self._request("POST", url, json=payload)

    def values_get(self, spreadsheet_id: str, a1_range: str) -> List[List[Any]]:
        encoded = urllib.parse.quote(a1_range, safe="!'():,")
        url = f"{SHEETS_API}/{spreadsheet_id}/values/{encoded}"
        data = self._get(url)
        values = data.get("values") if isinstance(data, dict) else None
        return values if isinstance(values, list) else []

    def values_batch_update(
        self,
        spreadsheet_id: str,
        data: List[Dict[str, Any]],
        value_input_option: str = "USER_ENTERED",
    ) -> Dict[str, Any]:
        if not data:
            return {"totalUpdatedCells": 0}
        data = [
            dict(item, values=[[json_safe_value(v) for v in row] for row in item.get("values") or []])
            for item in data
        ]
        url = f"{SHEETS_API}/{spreadsheet_id}/values:batchUpdate"
        result = self._post(
            url,
            {"valueInputOption": value_input_option, "data": data},
        )
        return result if isinstance(result, dict) else {}
