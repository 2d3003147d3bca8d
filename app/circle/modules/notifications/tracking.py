from __future__ import annotations

import base64

from flask import Blueprint, Response, abort, current_app, redirect, request

from app.circle.db import db_session
from app.circle.modules.notifications.models import EmailHistory
from app.circle.modules.notifications.service import is_allowed_host, parse_click_url, record_click, record_open
from app.circle.security import verify_signature

bp = Blueprint("email_tracking", __name__)

# 1x1 transparent GIF
PIXEL_GIF = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")


def _pixel() -> Response:
    return Response(
        PIXEL_GIF,
        mimetype="image/gif",
        headers={"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0"},
    )


@bp.get("/open/<int:history_id>")
def email_open(history_id: int):
    """Always answers with the pixel. Opens are only counted for a valid signature."""
    if not current_app.config.get("EMAIL_TRACKING_SECRET"):
        return _pixel()
    s = db_session()
    if record_open(s, history_id, request.args.get("sig")):
        s.commit()
    return _pixel()


@bp.get("/click/<int:history_id>")
def email_click(history_id: int):
    secret = current_app.config.get("EMAIL_TRACKING_SECRET") or ""
    if not secret:
        current_app.logger.error("Click tracking hit without EMAIL_TRACKING_SECRET configured")
        abort(500)
    if not verify_signature(secret, str(history_id), request.args.get("sig")):
        abort(403)

    url = (request.args.get("url") or "").strip()
    parsed = parse_click_url(url)
    if parsed is None:
        abort(400)
    if not is_allowed_host(parsed.hostname, current_app.config.get("TRACKING_ALLOWED_DOMAINS") or ()):
        current_app.logger.warning("Blocked click redirect to host=%s history_id=%s", parsed.hostname, history_id)
        abort(403)

    s = db_session()
    history = s.get(EmailHistory, history_id)
    if history is None:
        abort(404)
    record_click(s, history, url)
    s.commit()
    return redirect(url, code=302)
