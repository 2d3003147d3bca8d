from datetime import date, datetime, time, timedelta

from flask import Blueprint, flash, render_template, request

from app.circle.db import db_session
from app.circle.models import AuditEvent
from app.circle.modules.applications.models import Application
from app.circle.modules.deletion_requests.service import pending_count
from app.circle.modules.groups.models import Group
from app.circle.rbac import require_permission

bp = Blueprint("admin", __name__)


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


@bp.get("/")
@require_permission("admin.view")
def index():
    s = db_session()
    summary = {
        "pending_applications": s.query(Application).filter(Application.status == "pending").count(),
        "total_applications": s.query(Application).count(),
        "groups": s.query(Group).count(),
        "pending_deletions": pending_count(s),
    }
    return render_template("admin/index.html", summary=summary)


@bp.get("/audit")
@require_permission("audit.view")
def audit_list():
    """
    Last 200 audit events, filtered by action (contains), actor email (contains)
    and an inclusive YYYY-MM-DD date range.
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return render_template(
        "admin/audit/list.html",
        events=events,
        action=action,
        actor_email=actor_email,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )
