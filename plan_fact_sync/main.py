import json
import logging
import urllib.parse
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional

from config import Settings, load_settings
from sync_service import PlanFactSync, SheetSyncError, SyncError, build_grid_store


logger = logging.getLogger("plan_fact_sync.http")

SYNC_PATH = "/google-sheets/write"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger("plan_fact_sync")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("[plan-fact-sync] %(asctime)s %(levelname)s %(message)s")
        )
        root.addHandler(handler)
    root.setLevel(getattr(logging, str(level or "INFO").upper(), logging.INFO))
    root.propagate = False


class SyncHandler(BaseHTTPRequestHandler):
    service: Optional[PlanFactSync] = None

    def _send_json(self, code: int, payload: Dict[str, Any]) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.info(format, *args)

    def do_GET(self) -> None:
        path = urllib.parse.urlparse(self.path).path
        if path == "/health":
            self._send_json(HTTPStatus.OK, {"success": True, "status": "ok"})
            return
        if path != SYNC_PATH:
            self._send_json(
                HTTPStatus.NOT_FOUND, {"success": False, "message": "not found"}
            )
            return

        service = self.service
        if service is None:
            self._send_json(
                HTTPStatus.SERVICE_UNAVAILABLE,
                {"success": False, "message": "service unavailable"},
            )
            return

        try:
            summary = service.synchronize()
        except SyncError as exc:
            payload: Dict[str, Any] = {
                "success": False,
                "message": str(exc),
                "applied": exc.applied,
            }
            if isinstance(exc, SheetSyncError):
                payload["failedSheet"] = exc.sheet
            self._send_json(exc.status, payload)
            return
        except Exception:
            logger.exception("sync pass crashed")
            self._send_json(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                {"success": False, "message": "sync failed"},
            )
            return

        self._send_json(HTTPStatus.OK, {"success": True, **summary})


def build_service(settings: Settings) -> PlanFactSync:
    return PlanFactSync(settings, build_grid_store(settings))


def run() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    SyncHandler.service = build_service(settings)

    server = ThreadingHTTPServer((settings.host, settings.port), SyncHandler)
    logger.info(
        "listening on http://%s:%s sync_path=%s backend=%s",
        settings.host,
        settings.port,
        SYNC_PATH,
        settings.grid_backend,
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("stopping...")
    finally:
        server.server_close()


if __name__ == "__main__":
    run()
