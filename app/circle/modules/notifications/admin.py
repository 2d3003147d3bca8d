from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.circle.constants import TEMPLATE_KEYS
from app.circle.db import db_session
from app.circle.models import User
from app.circle.modules.notifications.models import EmailTemplate
from app.circle.modules.notifications.service import (
    ensure_default_templates,
    list_email_history,
    list_templates,
    send_test_email,
    update_template,
    validate_template_payload,
)
from app.circle.rbac import require_permission

bp = Blueprint("email_templates", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_template(template_key: str) -> EmailTemplate:
    if template_key not in TEMPLATE_KEYS:
        abort(404)
    template = db_session().query(EmailTemplate).filter(EmailTemplate.template_key == template_key).one_or_none()
    if not template:
        abort(404)
    return template


@bp.get("/email-templates")
@require_permission("email_templates.edit")
def templates_list():
    s = db_session()
    if ensure_default_templates(s):
        s.commit()
    return render_template("admin/email_templates/list.html", templates=list_templates(s))


@bp.get("/email-templates/<template_key>")
@require_permission("email_templates.edit")
def template_edit_get(template_key: str):
    return render_template("admin/email_templates/edit.html", template=_get_template(template_key))


@bp.post("/email-templates/<template_key>")
@require_permission("email_templates.edit")
def template_edit_post(template_key: str):
    s = db_session()
    template = _get_template(template_key)
    payload = {
        "subject": request.form.get("subject"),
        "html_content": request.form.get("html_content"),
        "description": request.form.get("description"),
    }
    errors = validate_template_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("email_templates.template_edit_get", template_key=template_key))
    update_template(s, template, payload, _current_user())
    s.commit()
    flash("Template saved.", "success")
    return redirect(url_for("email_templates.template_edit_get", template_key=template_key))


@bp.post("/email-templates/<template_key>/test")
@require_permission("email_templates.edit")
def template_send_test(template_key: str):
    template = _get_template(template_key)
    u = _current_user()
    to_email = u.email
    test_name = (request.form.get("test_name") or "").strip() or "Test User"
    ok, error = send_test_email(template, to_email, test_name)
    if ok:
        flash(f"Test email sent to {to_email}.", "success")
    else:
        flash(f"Test email failed: {error}", "danger")
    return redirect(url_for("email_templates.template_edit_get", template_key=template_key))


@bp.get("/email-history")
@require_permission("applications.review")
def email_history():
    return render_template("admin/email_history.html", history=list_email_history(db_session(), limit=200))
