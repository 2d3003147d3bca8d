from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.circle.db import db_session
from app.circle.models import User
from app.circle.modules.groups.models import Group, GroupMember
from app.circle.modules.groups.service import GroupError, add_member, create_group, delete_group, list_groups, remove_member
from app.circle.rbac import require_permission

bp = Blueprint("groups_admin", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _back():
    return redirect(url_for("groups_admin.groups_list"))


@bp.get("/groups")
@require_permission("groups.manage")
def groups_list():
    s = db_session()
    users = s.query(User).filter(User.is_active.is_(True)).order_by(User.email.asc()).all()
    return render_template("admin/groups/list.html", groups=list_groups(s), users=users)


@bp.post("/groups/new")
@require_permission("groups.manage")
def groups_create():
    s = db_session()
    try:
        group = create_group(s, request.form.get("name") or "", _current_user())
    except GroupError as e:
        flash(str(e), "danger")
        return _back()
    s.commit()
    flash(f"Group '{group.name}' created.", "success")
    return _back()


@bp.post("/groups/<int:group_id>/delete")
@require_permission("groups.manage")
def groups_delete(group_id: int):
    s = db_session()
    group = s.get(Group, group_id)
    if not group:
        abort(404)
    delete_group(s, group, _current_user())
    s.commit()
    flash("Group deleted.", "success")
    return _back()


@bp.post("/groups/<int:group_id>/members")
@require_permission("groups.manage")
def groups_member_add(group_id: int):
    s = db_session()
    group = s.get(Group, group_id)
    if not group:
        abort(404)
    try:
        member_user = s.get(User, int(request.form.get("user_id") or 0))
    except ValueError:
        member_user = None
    if not member_user:
        flash("Please choose a member to add.", "danger")
        return _back()
    try:
        add_member(s, group, member_user, _current_user())
    except GroupError as e:
        flash(str(e), "danger")
        return _back()
    s.commit()
    flash(f"Added {member_user.display_name} to {group.name}.", "success")
    return _back()


@bp.post("/groups/<int:group_id>/members/<int:membership_id>/delete")
@require_permission("groups.manage")
def groups_member_remove(group_id: int, membership_id: int):
    s = db_session()
    membership = s.get(GroupMember, membership_id)
    if not membership or membership.group_id != group_id:
        abort(404)
    remove_member(s, membership, _current_user())
    s.commit()
    flash("Member removed from group.", "success")
    return _back()
