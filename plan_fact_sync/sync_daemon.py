import logging
import time

from config import load_settings
from main import build_service, configure_logging
from sync_service import SyncError


logger = logging.getLogger("plan_fact_sync.daemon")


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    service = build_service(settings)

    while True:
        try:
            summary = service.synchronize()
            logger.info("pass ok %s", summary)
        except SyncError as exc:
            logger.error("pass failed: %s (applied: %s)", exc, exc.applied)
        except Exception:
            logger.exception("pass crashed")

        if settings.run_once:
            break

        time.sleep(settings.interval_minutes * 60)


if __name__ == "__main__":
    main()
