from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for

from app.circle.db import db_session
from app.circle.models import User
from app.circle.modules.resources.models import Resource
from app.circle.modules.resources.service import delete_resource, list_resources, upload_resource, validate_resource_payload
from app.circle.rbac import require_permission
from app.circle.storage import storage_from_config

bp = Blueprint("resources_admin", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/resources")
@require_permission("resources.manage")
def resources_list():
    return render_template("admin/resources/list.html", resources=list_resources(db_session()))


@bp.post("/resources")
@require_permission("resources.manage")
def resources_upload():
    s = db_session()
    f = request.files.get("file")
    file_bytes = f.read() if f and f.filename else None
    payload = {"title": request.form.get("title"), "description": request.form.get("description")}

    errors = validate_resource_payload(payload, file_bytes)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("resources_admin.resources_list"))

    storage = storage_from_config(current_app.config)
    content_type = (f.mimetype or "application/octet-stream").strip()
    upload_resource(s, storage, payload, file_bytes, f.filename, content_type, _current_user())
    s.commit()
    flash("Resource uploaded.", "success")
    return redirect(url_for("resources_admin.resources_list"))


@bp.post("/resources/<int:resource_id>/delete")
@require_permission("resources.manage")
def resources_delete(resource_id: int):
    s = db_session()
    resource = s.get(Resource, resource_id)
    if not resource:
        abort(404)
    delete_resource(s, storage_from_config(current_app.config), resource, _current_user())
    s.commit()
    flash("Resource deleted.", "success")
    return redirect(url_for("resources_admin.resources_list"))
