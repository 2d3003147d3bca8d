from datetime import date, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.circle import auth, create_app
from app.circle.db import session_scope
from app.circle.models import AuditEvent, Base, Permission, Role, User
from app.circle.modules.groups.models import Group, GroupMember
from app.circle.modules.groups.service import group_overview, is_in_same_group
from app.circle.modules.members.models import MiniMove, Profile, WeeklyEntry
from app.circle.utils import week_start


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("EMAIL_BACKEND", "outbox")
    auth._login_attempts.clear()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        perms = [Permission(key="admin.view", name="Admin"), Permission(key="groups.manage", name="Groups")]
        role = Role(key="admin", name="Administrator")
        role.permissions.extend(perms)
        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        admin.roles.append(role)
        s.add_all([*perms, role, admin])

        users = {}
        for key, name in (("zoe", "Zoe Zed"), ("ana", "Ana Able"), ("ben", None), ("cat", "Cat Solo")):
            u = User(email=f"{key}@example.com", password_hash=generate_password_hash("pw"), is_active=True)
            s.add(u)
            s.flush()
            if name:
                s.add(Profile(user_id=u.id, name=name))
            users[key] = u

        group = Group(name="Circle A")
        s.add(group)
        s.flush()
        for key in ("zoe", "ana", "ben"):
            s.add(GroupMember(group_id=group.id, user_id=users[key].id))

    return app.test_client()


def _user(s, key):
    return s.query(User).filter(User.email == f"{key}@example.com").one()


def _login(client, email):
    client.post("/auth/login", data={"email": email, "password": "pw"})


def test_overview_orders_caller_first_then_by_name(client):
    today = date(2026, 3, 11)
    with session_scope(client.application) as s:
        zoe = _user(s, "zoe")
        ana = _user(s, "ana")
        entry = WeeklyEntry(user_id=ana.id, week_start=week_start(today), wins="Shipped")
        s.add(entry)
        s.flush()
        s.add_all(
            [
                MiniMove(weekly_entry_id=entry.id, user_id=ana.id, title="One", completed=True),
                MiniMove(weekly_entry_id=entry.id, user_id=ana.id, title="Two", completed=False),
            ]
        )
        s.add(WeeklyEntry(user_id=ana.id, week_start=week_start(today) - timedelta(weeks=1), obstacles="Busy"))
        s.add(WeeklyEntry(user_id=ana.id, week_start=week_start(today) - timedelta(weeks=4), wins="Ancient"))

    with session_scope(client.application) as s:
        rows = group_overview(s, _user(s, "zoe"), today=today)
        assert [r.name for r in rows] == ["Zoe Zed", "Ana Able", "Unknown"]
        ana_row = rows[1]
        assert ana_row.current_week.wins == "Shipped"
        assert ana_row.previous_week.obstacles == "Busy"
        assert [m.title for m in ana_row.current_moves] == ["One", "Two"]
        assert ana_row.completed_count == 1
        assert rows[0].current_week is None

        assert group_overview(s, _user(s, "cat"), today=today) == []


def test_same_group_check(client):
    with session_scope(client.application) as s:
        assert is_in_same_group(s, _user(s, "zoe").id, _user(s, "ana").id)
        assert not is_in_same_group(s, _user(s, "zoe").id, _user(s, "cat").id)
        assert not is_in_same_group(s, _user(s, "cat").id, _user(s, "cat").id)


def test_group_page(client):
    _login(client, "ana@example.com")
    r = client.get("/group")
    assert r.status_code == 200
    assert b"Circle A" in r.data
    assert b"Zoe Zed" in r.data

    client.get("/auth/logout")
    _login(client, "cat@example.com")
    r = client.get("/group")
    assert b"haven&#39;t been added to a group" in r.data or b"haven't been added to a group" in r.data


def test_admin_group_lifecycle(client):
    _login(client, "admin@example.com")
    assert client.get("/admin/groups").status_code == 200

    r = client.post("/admin/groups/new", data={"name": "  "}, follow_redirects=True)
    assert b"Group name is required." in r.data

    client.post("/admin/groups/new", data={"name": "Circle B"})
    with session_scope(client.application) as s:
        group_id = s.query(Group).filter(Group.name == "Circle B").one().id
        cat_id = _user(s, "cat").id

    client.post(f"/admin/groups/{group_id}/members", data={"user_id": str(cat_id)})
    r = client.post(f"/admin/groups/{group_id}/members", data={"user_id": str(cat_id)}, follow_redirects=True)
    assert b"already in this group" in r.data

    with session_scope(client.application) as s:
        membership = s.query(GroupMember).filter(GroupMember.group_id == group_id).one()
        assert membership.user_id == cat_id
        membership_id = membership.id

    client.post(f"/admin/groups/{group_id}/members/{membership_id}/delete")
    with session_scope(client.application) as s:
        assert s.get(GroupMember, membership_id) is None

    client.post(f"/admin/groups/{group_id}/delete")
    with session_scope(client.application) as s:
        assert s.get(Group, group_id) is None
        actions = {e.action for e in s.query(AuditEvent).all()}
        assert {"group.create", "group.member_add", "group.member_remove", "group.delete"} <= actions


def test_deleting_group_removes_memberships(client):
    _login(client, "admin@example.com")
    with session_scope(client.application) as s:
        group_id = s.query(Group).filter(Group.name == "Circle A").one().id
    client.post(f"/admin/groups/{group_id}/delete")
    with session_scope(client.application) as s:
        assert s.query(GroupMember).count() == 0
        assert s.query(User).count() == 5


def test_members_cannot_manage_groups(client):
    _login(client, "ana@example.com")
    assert client.get("/admin/groups").status_code == 403
    assert client.post("/admin/groups/new", data={"name": "Sneaky"}).status_code == 403
