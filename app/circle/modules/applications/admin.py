from __future__ import annotations

from flask import Blueprint, Response, abort, flash, g, redirect, render_template, request, url_for

from app.circle.constants import APPLICATION_STATUSES, STATUS_FILTER_ALL
from app.circle.db import db_session
from app.circle.models import User
from app.circle.modules.applications.models import Application, ApplicationNote
from app.circle.modules.applications.service import (
    add_note,
    compute_stats,
    delete_note,
    export_csv,
    list_applications,
    update_application_status,
)
from app.circle.modules.notifications.service import list_email_history, send_status_notification
from app.circle.rbac import require_permission

bp = Blueprint("applications", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _status_filter() -> str:
    value = (request.args.get("status") or STATUS_FILTER_ALL).strip().lower()
    if value != STATUS_FILTER_ALL and value not in APPLICATION_STATUSES:
        return STATUS_FILTER_ALL
    return value


def _get_application(application_id: int) -> Application:
    application = db_session().get(Application, application_id)
    if not application:
        abort(404)
    return application


# ---------- List / export ----------
@bp.get("/applications")
@require_permission("applications.review")
def applications_list():
    s = db_session()
    status_filter = _status_filter()
    applications = list_applications(s, status_filter)
    return render_template(
        "admin/applications/list.html",
        applications=applications,
        status_filter=status_filter,
        statuses=(STATUS_FILTER_ALL, *APPLICATION_STATUSES),
    )


@bp.get("/applications/export.csv")
@require_permission("applications.review")
def applications_export():
    s = db_session()
    status_filter = _status_filter()
    body = export_csv(list_applications(s, status_filter))
    filename = f"applications-{status_filter}.csv"
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@bp.get("/applications/stats")
@require_permission("applications.review")
def applications_stats():
    s = db_session()
    stats = compute_stats(list_applications(s, STATUS_FILTER_ALL))
    peak = max((count for _, count in stats.weekly_trend), default=0)
    return render_template("admin/applications/stats.html", stats=stats, peak=peak)


# ---------- Detail ----------
@bp.get("/applications/<int:application_id>")
@require_permission("applications.review")
def application_detail(application_id: int):
    s = db_session()
    application = _get_application(application_id)
    return render_template(
        "admin/applications/detail.html",
        application=application,
        statuses=APPLICATION_STATUSES,
        email_history=list_email_history(s, application_id=application.id),
    )


@bp.post("/applications/<int:application_id>/status")
@require_permission("applications.review")
def application_status_update(application_id: int):
    s = db_session()
    u = _current_user()
    application = _get_application(application_id)
    new_status = (request.form.get("status") or "").strip().lower()

    try:
        old_status = update_application_status(s, application, new_status, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("applications.application_detail", application_id=application.id))
    s.commit()

    if old_status == new_status:
        flash("Status unchanged.", "info")
        return redirect(url_for("applications.application_detail", application_id=application.id))

    history = send_status_notification(s, application, new_status, u)
    s.commit()
    if history is None:
        flash(f"Status updated to {new_status}.", "success")
    elif history.status == "sent":
        flash(f"Status updated to {new_status}. Notification email sent.", "success")
    else:
        flash(f"Status updated to {new_status}, but the notification email failed: {history.error_message}", "warning")
    return redirect(url_for("applications.application_detail", application_id=application.id))


# ---------- Notes ----------
@bp.post("/applications/<int:application_id>/notes")
@require_permission("applications.review")
def application_note_add(application_id: int):
    s = db_session()
    u = _current_user()
    application = _get_application(application_id)
    try:
        add_note(s, application, request.form.get("content") or "", u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("applications.application_detail", application_id=application.id))
    s.commit()
    flash("Note added.", "success")
    return redirect(url_for("applications.application_detail", application_id=application.id))


@bp.post("/applications/<int:application_id>/notes/<int:note_id>/delete")
@require_permission("applications.review")
def application_note_delete(application_id: int, note_id: int):
    s = db_session()
    u = _current_user()
    note = s.get(ApplicationNote, note_id)
    if not note or note.application_id != application_id:
        abort(404)
    delete_note(s, note, u)
    s.commit()
    flash("Note deleted.", "success")
    return redirect(url_for("applications.application_detail", application_id=application_id))
