#!/usr/bin/env python3
"""
Send the weekly Q&A digest to members with the `digest` preference and clear
the queue. Meant to be run from cron once a week, e.g.

    0 9 * * MON  cd /app && python scripts/send_weekly_digest.py
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.circle import create_app
from app.circle.db import session_scope
from app.circle.modules.notifications.service import send_weekly_digest


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = create_app()
    with app.app_context(), session_scope(app) as s:
        result = send_weekly_digest(s)
    print(
        f"Weekly digest: sent={result.sent} failed={result.failed} "
        f"questionsProcessed={result.questions_processed}",
        flush=True,
    )
    return 1 if result.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
