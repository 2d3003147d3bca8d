"""
Deploy step for the Accountability Circle: check the settings the app cannot
run safely without, upgrade the schema and seed the admin account, role and
status email templates.

    python scripts/release.py
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.circle.config import Settings, load_settings

logger = logging.getLogger("circle.release")


class ReleaseError(RuntimeError):
    pass


@dataclass
class ReleaseCheck:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def check_settings(settings: Settings) -> ReleaseCheck:
    """Production deploys refuse placeholder secrets and SQLite; missing email settings only warn."""
    check = ReleaseCheck()
    production = settings.env.lower() in ("prod", "production")
    email_backend = settings.email_backend.lower()

    if production:
        if settings.database_url.startswith("sqlite"):
            check.errors.append("DATABASE_URL points at SQLite; production needs Postgres.")
        if settings.secret_key in ("", "change-me"):
            check.errors.append("SECRET_KEY is unset or still the placeholder.")
        if email_backend != "resend":
            check.errors.append("EMAIL_BACKEND must be 'resend' in production; the outbox keeps mail in memory.")

    if email_backend == "resend" and not settings.resend_api_key:
        check.errors.append("EMAIL_BACKEND is 'resend' but RESEND_API_KEY is empty.")
    if settings.storage_backend.lower() == "s3" and not settings.s3_bucket:
        check.errors.append("STORAGE_BACKEND is 's3' but S3_BUCKET is empty.")

    if not settings.facilitator_email:
        check.warnings.append("FACILITATOR_EMAIL is empty; new applications and deletion requests will not be announced.")
    if not settings.email_tracking_secret:
        check.warnings.append("EMAIL_TRACKING_SECRET is empty; status emails go out without open/click tracking.")
    return check


def migrate(database_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(cfg, "head")


def run_release(settings: Settings | None = None) -> None:
    settings = settings or load_settings()
    check = check_settings(settings)
    for w in check.warnings:
        logger.warning(w)
    if check.errors:
        for e in check.errors:
            logger.error(e)
        raise ReleaseError(f"{len(check.errors)} setting(s) must be fixed before release.")

    logger.info("Upgrading schema env=%s", settings.env)
    migrate(settings.database_url)

    from scripts import init_db

    init_db.seed_only(database_url=settings.database_url)
    logger.info("Release complete")


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        run_release()
    except ReleaseError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
