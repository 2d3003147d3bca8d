#!/usr/bin/env python3
"""
Container entrypoint: run the release step, then hand the process over to
gunicorn serving `app.wsgi:app`.

PORT (default 8080), WEB_CONCURRENCY (default 2) and GUNICORN_TIMEOUT
(default 60) tune the server. SKIP_RELEASE=1 starts gunicorn straight away,
for extra web instances that share an already-migrated database.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

logger = logging.getLogger("circle.start")


def _positive_int(environ, name: str, default: int, upper: int | None = None) -> int:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}.") from None
    if value < 1 or (upper is not None and value > upper):
        raise ValueError(f"{name} out of range: {value}.")
    return value


def gunicorn_argv(environ) -> list[str]:
    port = _positive_int(environ, "PORT", 8080, upper=65535)
    workers = _positive_int(environ, "WEB_CONCURRENCY", 2)
    timeout = _positive_int(environ, "GUNICORN_TIMEOUT", 60)
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", str(timeout),
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        argv = gunicorn_argv(os.environ)
    except ValueError as e:
        logger.error("%s", e)
        return 1

    if (os.environ.get("SKIP_RELEASE") or "").strip() != "1":
        from scripts.release import ReleaseError, run_release

        try:
            run_release()
        except ReleaseError as e:
            logger.error("%s", e)
            return 1

    logger.info("Starting gunicorn: %s", " ".join(argv[1:]))
    os.execvp(argv[0], argv)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
