"""One-shot reminder sweep for cron: python -m scripts.sweep_reminders (from api/)."""
from __future__ import annotations

import sys

from config import log
from container import build_services
from utils.errors import ServiceError


def main() -> int:
    services = build_services()
    try:
        result = services.reminders.process_pending()
    except ServiceError as e:
        log.error("Reminder sweep failed: %s", e.message)
        return 1
    log.info("Reminder sweep: %s", result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
