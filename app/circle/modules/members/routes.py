from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, send_file, url_for

from app.circle.constants import NOTIFICATION_PREFERENCES
from app.circle.db import db_session
from app.circle.models import User
from app.circle.modules.deletion_requests.service import DeletionRequestError, pending_request_for, request_deletion
from app.circle.modules.groups.service import is_in_same_group
from app.circle.modules.members.models import Profile
from app.circle.modules.members.service import (
    WEEKLY_FIELDS,
    MemberError,
    add_mini_move,
    avatar_mimetype,
    delete_mini_move,
    get_or_create_current_week,
    get_own_entry,
    get_own_mini_move,
    get_profile,
    is_week_editable,
    past_entries,
    previous_week_entry,
    toggle_mini_move,
    update_profile_fields,
    update_weekly_entry,
    upload_avatar,
)
from app.circle.modules.notifications.service import notify_deletion_request
from app.circle.rbac import require_login
from app.circle.storage import StorageError, storage_from_config

bp = Blueprint("members", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _back_to_dashboard():
    return redirect(url_for("members.dashboard"))


# ---------- Dashboard ----------
@bp.get("/dashboard")
@require_login
def dashboard():
    s = db_session()
    u = _current_user()
    profile = get_profile(s, u)
    current = get_or_create_current_week(s, u)
    previous = previous_week_entry(s, u)
    s.commit()
    return render_template(
        "member/dashboard.html",
        profile=profile,
        current=current,
        previous=previous,
    )


@bp.post("/dashboard/profile")
@require_login
def profile_update():
    s = db_session()
    u = _current_user()
    updates = {k: request.form.get(k) for k in ("name", "growth_goal", "monthly_milestones") if k in request.form}
    try:
        update_profile_fields(s, u, updates)
    except MemberError as e:
        flash(str(e), "danger")
        return _back_to_dashboard()
    s.commit()
    flash("Profile saved.", "success")
    return _back_to_dashboard()


@bp.post("/dashboard/weeks/<int:entry_id>")
@require_login
def weekly_entry_update(entry_id: int):
    s = db_session()
    u = _current_user()
    entry = get_own_entry(s, u, entry_id)
    if not entry:
        abort(404)
    updates = {k: request.form.get(k) for k in WEEKLY_FIELDS if k in request.form}
    try:
        update_weekly_entry(s, entry, u, updates)
    except MemberError as e:
        flash(str(e), "danger")
        return _back_to_dashboard()
    s.commit()
    flash("Reflection saved.", "success")
    return _back_to_dashboard()


# ---------- Mini moves ----------
@bp.post("/dashboard/weeks/<int:entry_id>/moves")
@require_login
def mini_move_add(entry_id: int):
    s = db_session()
    u = _current_user()
    entry = get_own_entry(s, u, entry_id)
    if not entry:
        abort(404)
    if not is_week_editable(entry.week_start):
        flash("Only this week and last week can be edited.", "danger")
        return _back_to_dashboard()
    try:
        add_mini_move(s, entry, u, request.form.get("title") or "")
    except MemberError as e:
        flash(str(e), "danger")
        return _back_to_dashboard()
    s.commit()
    return _back_to_dashboard()


@bp.post("/dashboard/moves/<int:move_id>/toggle")
@require_login
def mini_move_toggle(move_id: int):
    s = db_session()
    move = get_own_mini_move(s, _current_user(), move_id)
    if not move:
        abort(404)
    toggle_mini_move(move)
    s.commit()
    return _back_to_dashboard()


@bp.post("/dashboard/moves/<int:move_id>/delete")
@require_login
def mini_move_delete(move_id: int):
    s = db_session()
    move = get_own_mini_move(s, _current_user(), move_id)
    if not move:
        abort(404)
    delete_mini_move(s, move)
    s.commit()
    return _back_to_dashboard()


# ---------- History ----------
@bp.get("/dashboard/history")
@require_login
def history():
    s = db_session()
    entries = past_entries(s, _current_user())
    return render_template("member/history.html", entries=entries)


# ---------- Avatar ----------
@bp.post("/dashboard/avatar")
@require_login
def avatar_upload():
    s = db_session()
    u = _current_user()
    f = request.files.get("avatar")
    if not f or not f.filename:
        flash("Please choose an image to upload.", "danger")
        return _back_to_dashboard()

    storage = storage_from_config(current_app.config)
    try:
        upload_avatar(s, storage, u, f.read(), f.filename, f.mimetype)
    except MemberError as e:
        flash(str(e), "danger")
        return _back_to_dashboard()
    s.commit()
    flash("Profile photo updated.", "success")
    return _back_to_dashboard()


@bp.get("/avatars/<int:user_id>")
@require_login
def avatar(user_id: int):
    """Avatars are visible to the member, their group peers and admins."""
    s = db_session()
    u = _current_user()
    if user_id != u.id and not u.is_admin and not is_in_same_group(s, u.id, user_id):
        abort(403)
    profile = s.query(Profile).filter(Profile.user_id == user_id).one_or_none()
    if not profile or not profile.avatar_key:
        abort(404)
    mimetype = avatar_mimetype(profile.avatar_key)
    if mimetype is None:
        abort(404)
    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(profile.avatar_key)
    except (FileNotFoundError, StorageError):
        abort(404)
    return send_file(
        fobj,
        mimetype=mimetype,
        download_name=profile.avatar_key.rsplit("/", 1)[-1],
        max_age=0,
    )


# ---------- Settings ----------
@bp.get("/settings")
@require_login
def settings():
    s = db_session()
    u = _current_user()
    profile = get_profile(s, u)
    s.commit()
    return render_template(
        "member/settings.html",
        profile=profile,
        preferences=NOTIFICATION_PREFERENCES,
        pending_deletion=pending_request_for(s, u),
    )


@bp.post("/settings/notifications")
@require_login
def notification_preference_update():
    s = db_session()
    try:
        update_profile_fields(s, _current_user(), {"notification_preference": request.form.get("notification_preference")})
    except MemberError as e:
        flash(str(e), "danger")
        return redirect(url_for("members.settings"))
    s.commit()
    flash("Notification preference saved.", "success")
    return redirect(url_for("members.settings"))


@bp.post("/settings/delete-account")
@require_login
def deletion_request_create():
    s = db_session()
    u = _current_user()
    try:
        row = request_deletion(s, u, request.form.get("reason"))
    except DeletionRequestError as e:
        flash(str(e), "danger")
        return redirect(url_for("members.settings"))
    s.commit()
    notify_deletion_request(row)
    flash("Your deletion request has been sent. The facilitator will process it shortly.", "success")
    return redirect(url_for("members.settings"))
