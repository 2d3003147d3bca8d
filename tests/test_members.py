import io
from datetime import date, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.circle import auth, create_app
from app.circle.db import session_scope
from app.circle.models import Base, User
from app.circle.modules.deletion_requests.models import DeletionRequest
from app.circle.modules.groups.models import Group, GroupMember
from app.circle.modules.members.models import MiniMove, Profile, WeeklyEntry
from app.circle.modules.members.service import is_week_editable, previous_week_start
from app.circle.utils import week_start


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("EMAIL_BACKEND", "outbox")
    monkeypatch.setenv("FACILITATOR_EMAIL", "facilitator@example.com")
    auth._login_attempts.clear()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        for email, name in (("maya@example.com", "Maya Member"), ("olly@example.com", "Olly Other")):
            u = User(email=email, password_hash=generate_password_hash("pw"), is_active=True)
            s.add(u)
            s.flush()
            s.add(Profile(user_id=u.id, name=name))

    return app.test_client()


def _login(client, email="maya@example.com"):
    client.post("/auth/login", data={"email": email, "password": "pw"})


def _user_id(client, email):
    with session_scope(client.application) as s:
        return s.query(User).filter(User.email == email).one().id


def _current_entry_id(client, email="maya@example.com"):
    uid = _user_id(client, email)
    with session_scope(client.application) as s:
        return s.query(WeeklyEntry).filter(WeeklyEntry.user_id == uid, WeeklyEntry.week_start == week_start()).one().id


# ---------- week helpers ----------

def test_week_helpers():
    wednesday = date(2026, 3, 11)
    assert week_start(wednesday) == date(2026, 3, 9)
    assert week_start(date(2026, 3, 9)) == date(2026, 3, 9)
    assert week_start(date(2026, 3, 15)) == date(2026, 3, 9)
    assert previous_week_start(wednesday) == date(2026, 3, 2)
    assert is_week_editable(date(2026, 3, 9), wednesday)
    assert is_week_editable(date(2026, 3, 2), wednesday)
    assert not is_week_editable(date(2026, 2, 23), wednesday)


# ---------- dashboard ----------

def test_dashboard_requires_login(client):
    r = client.get("/dashboard")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]


def test_dashboard_creates_current_week_once(client):
    _login(client)
    assert client.get("/dashboard").status_code == 200
    assert client.get("/dashboard").status_code == 200
    uid = _user_id(client, "maya@example.com")
    with session_scope(client.application) as s:
        entries = s.query(WeeklyEntry).filter(WeeklyEntry.user_id == uid).all()
        assert len(entries) == 1
        assert entries[0].week_start == week_start()
        assert entries[0].week_start.weekday() == 0


def test_profile_update_and_blank_name(client):
    _login(client)
    client.post("/dashboard/profile", data={"name": "Maya M", "growth_goal": "Ship it", "monthly_milestones": ""})
    uid = _user_id(client, "maya@example.com")
    with session_scope(client.application) as s:
        p = s.query(Profile).filter(Profile.user_id == uid).one()
        assert p.name == "Maya M"
        assert p.growth_goal == "Ship it"
        assert p.monthly_milestones is None

    r = client.post("/dashboard/profile", data={"name": "  "}, follow_redirects=True)
    assert b"Name cannot be empty." in r.data


def test_mini_move_add_toggle_delete(client):
    _login(client)
    client.get("/dashboard")
    entry_id = _current_entry_id(client)

    client.post(f"/dashboard/weeks/{entry_id}/moves", data={"title": "  Draft landing page "})
    r = client.post(f"/dashboard/weeks/{entry_id}/moves", data={"title": " "}, follow_redirects=True)
    assert b"Mini move title cannot be empty." in r.data

    with session_scope(client.application) as s:
        move = s.query(MiniMove).one()
        assert move.title == "Draft landing page"
        assert move.completed is False
        move_id = move.id

    client.post(f"/dashboard/moves/{move_id}/toggle")
    with session_scope(client.application) as s:
        assert s.get(MiniMove, move_id).completed is True

    client.post(f"/dashboard/moves/{move_id}/delete")
    with session_scope(client.application) as s:
        assert s.get(MiniMove, move_id) is None


def test_cannot_touch_another_members_week(client):
    _login(client, "olly@example.com")
    client.get("/dashboard")
    olly_entry = _current_entry_id(client, "olly@example.com")
    client.get("/auth/logout")

    _login(client)
    assert client.post(f"/dashboard/weeks/{olly_entry}", data={"wins": "hijack"}).status_code == 404
    assert client.post(f"/dashboard/weeks/{olly_entry}/moves", data={"title": "x"}).status_code == 404


def test_reflection_update_and_old_week_locked(client):
    _login(client)
    client.get("/dashboard")
    entry_id = _current_entry_id(client)
    client.post(f"/dashboard/weeks/{entry_id}", data={"obstacles": "Time", "wins": "Launched", "self_care": ""})
    with session_scope(client.application) as s:
        entry = s.get(WeeklyEntry, entry_id)
        assert (entry.obstacles, entry.wins, entry.self_care) == ("Time", "Launched", None)

    uid = _user_id(client, "maya@example.com")
    with session_scope(client.application) as s:
        old = WeeklyEntry(user_id=uid, week_start=week_start() - timedelta(weeks=3), wins="Old win")
        s.add(old)
        s.flush()
        old_id = old.id

    r = client.post(f"/dashboard/weeks/{old_id}", data={"wins": "Rewritten"}, follow_redirects=True)
    assert b"Only this week and last week can be edited." in r.data
    with session_scope(client.application) as s:
        assert s.get(WeeklyEntry, old_id).wins == "Old win"

    r = client.get("/dashboard/history")
    assert r.status_code == 200
    assert b"Old win" in r.data


# ---------- avatar ----------

def test_avatar_upload_and_visibility(client):
    _login(client)
    r = client.post(
        "/dashboard/avatar",
        data={"avatar": (io.BytesIO(b"\x89PNG fake"), "me.png", "image/png")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 302
    maya = _user_id(client, "maya@example.com")
    r = client.get(f"/avatars/{maya}")
    assert r.status_code == 200
    assert r.data == b"\x89PNG fake"
    client.get("/auth/logout")

    # Not in the same group
    _login(client, "olly@example.com")
    assert client.get(f"/avatars/{maya}").status_code == 403

    olly = _user_id(client, "olly@example.com")
    with session_scope(client.application) as s:
        g = Group(name="Spring cohort")
        s.add(g)
        s.flush()
        s.add_all([GroupMember(group_id=g.id, user_id=maya), GroupMember(group_id=g.id, user_id=olly)])
    assert client.get(f"/avatars/{maya}").status_code == 200


def test_avatar_rejects_non_images(client):
    _login(client)
    r = client.post(
        "/dashboard/avatar",
        data={"avatar": (io.BytesIO(b"MZ"), "tool.exe", "application/octet-stream")},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert b"Avatar must be a PNG, JPEG, GIF or WebP image." in r.data


def test_avatar_served_with_checked_image_type(client):
    _login(client)
    client.post(
        "/dashboard/avatar",
        data={"avatar": (io.BytesIO(b"<script>alert(1)</script>"), "evil.html", "image/png")},
        content_type="multipart/form-data",
    )
    maya = _user_id(client, "maya@example.com")
    with session_scope(client.application) as s:
        key = s.query(Profile).filter(Profile.user_id == maya).one().avatar_key
    assert key.endswith(".png")
    assert "evil" not in key

    r = client.get(f"/avatars/{maya}")
    assert r.status_code == 200
    assert r.mimetype == "image/png"


def test_avatar_over_size_limit_rejected(client):
    _login(client)
    r = client.post(
        "/dashboard/avatar",
        data={"avatar": (io.BytesIO(b"0" * (5 * 1024 * 1024 + 1)), "big.png", "image/png")},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert b"Avatar must be 5MB or smaller." in r.data
    maya = _user_id(client, "maya@example.com")
    with session_scope(client.application) as s:
        profile = s.query(Profile).filter(Profile.user_id == maya).one_or_none()
        assert profile is None or profile.avatar_key is None


# ---------- settings ----------

def test_notification_preference(client):
    _login(client)
    client.post("/settings/notifications", data={"notification_preference": "digest"})
    uid = _user_id(client, "maya@example.com")
    with session_scope(client.application) as s:
        assert s.query(Profile).filter(Profile.user_id == uid).one().notification_preference == "digest"

    r = client.post("/settings/notifications", data={"notification_preference": "hourly"}, follow_redirects=True)
    assert b"Notification preference must be one of" in r.data


def test_deletion_request_once_and_facilitator_alert(client):
    _login(client)
    client.post("/settings/delete-account", data={"reason": "Taking a break"})
    r = client.post("/settings/delete-account", data={"reason": "again"}, follow_redirects=True)
    assert b"already have a pending deletion request" in r.data

    with session_scope(client.application) as s:
        row = s.query(DeletionRequest).one()
        assert row.status == "pending"
        assert row.user_name == "Maya Member"
        assert row.reason == "Taking a break"

    outbox = client.application.extensions["mailer"].outbox
    assert [m.to for m in outbox] == ["facilitator@example.com"]
    assert outbox[0].subject == "Account Deletion Request: Maya Member"
