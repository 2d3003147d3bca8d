from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, url_for

from app.circle.db import db_session
from app.circle.models import User
from app.circle.modules.deletion_requests.models import DeletionRequest
from app.circle.modules.deletion_requests.service import (
    DeletionRequestError,
    cancel_request,
    complete_request,
    list_requests,
    pending_count,
)
from app.circle.modules.notifications.service import notify_deletion_processed
from app.circle.rbac import require_permission

bp = Blueprint("deletion_requests", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _back():
    return redirect(url_for("deletion_requests.requests_list"))


@bp.get("/deletion-requests")
@require_permission("deletion_requests.process")
def requests_list():
    s = db_session()
    return render_template(
        "admin/deletion_requests/list.html",
        requests=list_requests(s),
        pending=pending_count(s),
    )


def _process(request_id: int, completed: bool):
    s = db_session()
    row = s.get(DeletionRequest, request_id)
    if not row:
        abort(404)
    try:
        if completed:
            complete_request(s, row, _current_user())
        else:
            cancel_request(s, row, _current_user())
    except DeletionRequestError as e:
        flash(str(e), "danger")
        return _back()
    s.commit()

    if notify_deletion_processed(row, completed):
        flash("Request processed and the member has been notified.", "success")
    else:
        flash("Request processed, but the notification email could not be sent.", "warning")
    return _back()


@bp.post("/deletion-requests/<int:request_id>/complete")
@require_permission("deletion_requests.process")
def request_complete(request_id: int):
    return _process(request_id, completed=True)


@bp.post("/deletion-requests/<int:request_id>/cancel")
@require_permission("deletion_requests.process")
def request_cancel(request_id: int):
    return _process(request_id, completed=False)
