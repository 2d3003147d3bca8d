import json
from datetime import date

import pytest
from werkzeug.security import generate_password_hash

from app.circle import auth, create_app
from app.circle.db import session_scope
from app.circle.models import AuditEvent, Base, Permission, Role, User
from app.circle.modules.deletion_requests.models import DeletionRequest
from app.circle.modules.groups.models import Group, GroupMember
from app.circle.modules.members.models import MiniMove, Profile, WeeklyEntry
from app.circle.utils import week_start


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("EMAIL_BACKEND", "outbox")
    monkeypatch.setenv("FACILITATOR_EMAIL", "facilitator@example.com")
    auth._login_attempts.clear()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        perms = [Permission(key="admin.view", name="Admin"), Permission(key="deletion_requests.process", name="Deletion")]
        role = Role(key="admin", name="Administrator")
        role.permissions.extend(perms)
        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        admin.roles.append(role)
        s.add_all([*perms, role, admin])

        maya = User(email="maya@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        s.add(maya)
        s.flush()
        s.add(Profile(user_id=maya.id, name="Maya Member"))
        group = Group(name="Circle A")
        s.add(group)
        s.flush()
        s.add(GroupMember(group_id=group.id, user_id=maya.id))
        entry = WeeklyEntry(user_id=maya.id, week_start=week_start(date.today()), wins="Big win")
        s.add(entry)
        s.flush()
        s.add(MiniMove(weekly_entry_id=entry.id, user_id=maya.id, title="Write post"))

    return app.test_client()


def _login(client, email):
    client.post("/auth/login", data={"email": email, "password": "pw"})


def _request_deletion(client):
    _login(client, "maya@example.com")
    client.post("/settings/delete-account", data={"reason": "Moving on"})
    client.get("/auth/logout")
    with session_scope(client.application) as s:
        return s.query(DeletionRequest).one().id


def _outbox(client):
    return client.application.extensions["mailer"].outbox


def test_list_shows_pending_requests(client):
    _request_deletion(client)
    _login(client, "admin@example.com")
    r = client.get("/admin/deletion-requests")
    assert r.status_code == 200
    assert b"Maya Member" in r.data
    assert b"Moving on" in r.data


def test_complete_removes_member_data(client):
    request_id = _request_deletion(client)
    _outbox(client).clear()
    _login(client, "admin@example.com")

    r = client.post(f"/admin/deletion-requests/{request_id}/complete")
    assert r.status_code == 302

    with session_scope(client.application) as s:
        maya = s.query(User).filter(User.email == "maya@example.com").one()
        assert maya.is_active is False
        assert s.query(Profile).filter(Profile.user_id == maya.id).count() == 0
        assert s.query(WeeklyEntry).count() == 0
        assert s.query(MiniMove).count() == 0
        assert s.query(GroupMember).count() == 0
        assert s.query(Group).count() == 1

        row = s.get(DeletionRequest, request_id)
        assert row.status == "completed"
        assert row.processed_at is not None
        ev = s.query(AuditEvent).filter(AuditEvent.action == "process_deletion").one()
        assert json.loads(ev.new_value_json) == {"status": "completed"}

    outbox = _outbox(client)
    assert [m.to for m in outbox] == ["maya@example.com"]
    assert outbox[0].subject == "Your Account Has Been Deleted - Accountability Circle"

    # Deactivated login is refused
    client.get("/auth/logout")
    r = client.post("/auth/login", data={"email": "maya@example.com", "password": "pw"})
    assert not r.headers["Location"].endswith("/dashboard")


def test_cancel_keeps_data_and_notifies(client):
    request_id = _request_deletion(client)
    _outbox(client).clear()
    _login(client, "admin@example.com")
    client.post(f"/admin/deletion-requests/{request_id}/cancel")

    with session_scope(client.application) as s:
        assert s.get(DeletionRequest, request_id).status == "cancelled"
        assert s.query(Profile).count() == 1
        assert s.query(AuditEvent).filter(AuditEvent.action == "cancel_deletion").count() == 1

    assert _outbox(client)[0].subject == "Your Account Deletion Request Was Cancelled"


def test_processed_request_cannot_be_processed_again(client):
    request_id = _request_deletion(client)
    _login(client, "admin@example.com")
    client.post(f"/admin/deletion-requests/{request_id}/cancel")
    r = client.post(f"/admin/deletion-requests/{request_id}/complete", follow_redirects=True)
    assert b"Request is already cancelled." in r.data
    with session_scope(client.application) as s:
        assert s.query(Profile).count() == 1


def test_members_cannot_process_requests(client):
    request_id = _request_deletion(client)
    _login(client, "maya@example.com")
    assert client.post(f"/admin/deletion-requests/{request_id}/complete").status_code == 403
