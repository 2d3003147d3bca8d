from flask import Blueprint, g, render_template

from app.circle.db import db_session
from app.circle.modules.groups.service import group_overview, user_groups
from app.circle.modules.members.service import previous_week_start
from app.circle.rbac import require_login
from app.circle.utils import week_start

bp = Blueprint("groups", __name__)


@bp.get("/group")
@require_login
def group_view():
    s = db_session()
    u = g.current_user
    return render_template(
        "member/group.html",
        groups=user_groups(s, u.id),
        members=group_overview(s, u),
        current_week=week_start(),
        previous_week=previous_week_start(),
    )
