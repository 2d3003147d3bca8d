import pytest
from werkzeug.security import generate_password_hash

from app.circle import auth, create_app
from app.circle.db import session_scope
from app.circle.mailer import MailError, Mailer
from app.circle.models import AuditEvent, Base, Permission, Role, User
from app.circle.modules.applications.models import Application
from app.circle.modules.discussion.models import GroupQuestion
from app.circle.modules.groups.models import Group, GroupMember
from app.circle.modules.members.models import Profile
from app.circle.modules.notifications.models import DigestQueueItem, EmailClick, EmailHistory, EmailTemplate
from app.circle.modules.notifications.service import digest_subject, is_allowed_host, send_weekly_digest
from app.circle.security import sign_value


class _FailingMailer(Mailer):
    sender = "noreply@example.com"

    def send(self, to, subject, html):
        raise MailError("provider down")


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("EMAIL_BACKEND", "outbox")
    monkeypatch.setenv("APP_BASE_URL", "https://app.example.com")
    monkeypatch.setenv("EMAIL_TRACKING_SECRET", "track-secret")
    monkeypatch.setenv("TRACKING_ALLOWED_DOMAINS", "accountabilitycircle.co.uk")
    auth._login_attempts.clear()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        perms = [
            Permission(key=key, name=key)
            for key in ("admin.view", "applications.review", "email_templates.edit")
        ]
        role = Role(key="admin", name="Administrator")
        role.permissions.extend(perms)
        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        admin.roles.append(role)
        s.add_all([*perms, role, admin])

        group = Group(name="Circle A")
        s.add(group)
        s.flush()
        members = (
            ("ana", "Ana Able", "instant"),
            ("ben", "Ben Bold", "instant"),
            ("cat", "Cat Calm", "digest"),
            ("dan", "Dan Dark", "off"),
        )
        for key, name, pref in members:
            u = User(email=f"{key}@example.com", password_hash=generate_password_hash("pw"), is_active=True)
            s.add(u)
            s.flush()
            s.add(Profile(user_id=u.id, name=name, notification_preference=pref))
            s.add(GroupMember(group_id=group.id, user_id=u.id))

    return app.test_client()


def _login(client, key):
    client.post("/auth/login", data={"email": f"{key}@example.com", "password": "pw"})


def _outbox(client):
    return client.application.extensions["mailer"].outbox


def _group_id(client):
    with session_scope(client.application) as s:
        return s.query(Group).one().id


def _post_question(client, key, content):
    _login(client, key)
    client.post(f"/group/{_group_id(client)}/qa/questions", data={"content": content})
    client.get("/auth/logout")


# ---------- Q&A fan-out ----------

def test_new_question_fans_out_by_preference(client):
    _post_question(client, "ana", "Who has tried cold outreach?")

    outbox = _outbox(client)
    assert [m.to for m in outbox] == ["ben@example.com"]
    assert outbox[0].subject == "Ana Able asked a question in your group"
    assert "Who has tried cold outreach?" in outbox[0].html
    assert "Hi Ben" in outbox[0].html

    with session_scope(client.application) as s:
        item = s.query(DigestQueueItem).one()
        assert item.author_name == "Ana Able"
        assert item.question_content == "Who has tried cold outreach?"


def test_reply_notifies_author_but_not_self(client):
    _post_question(client, "ana", "Feedback on my sales page?")
    _outbox(client).clear()
    with session_scope(client.application) as s:
        qid = s.query(GroupQuestion).one().id

    _login(client, "ana")
    client.post(f"/qa/questions/{qid}/answers", data={"content": "Adding context"})
    assert _outbox(client) == []
    client.get("/auth/logout")

    _login(client, "ben")
    client.post(f"/qa/questions/{qid}/answers", data={"content": "Looks great"})
    outbox = _outbox(client)
    assert [m.to for m in outbox] == ["ana@example.com"]
    assert outbox[0].subject == "Ben Bold replied to your question"


def test_previews_are_truncated(client):
    _post_question(client, "ana", "x" * 250)
    html = _outbox(client)[0].html
    assert "x" * 200 + "..." in html
    assert "x" * 201 not in html

    _outbox(client).clear()
    _post_question(client, "ana", "q" * 150)
    with session_scope(client.application) as s:
        qid = s.query(GroupQuestion).filter(GroupQuestion.content == "q" * 150).one().id
    _outbox(client).clear()
    _login(client, "ben")
    client.post(f"/qa/questions/{qid}/answers", data={"content": "r" * 250})
    client.get("/auth/logout")
    html = _outbox(client)[0].html
    assert "q" * 100 + "..." in html
    assert "q" * 101 not in html
    assert "r" * 200 + "..." in html
    assert "r" * 201 not in html

    _outbox(client).clear()
    app = client.application
    with app.app_context(), session_scope(app) as s:
        send_weekly_digest(s)
    html = _outbox(client)[0].html
    assert "x" * 150 + "..." in html
    assert "x" * 151 not in html


def test_digest_subject():
    assert digest_subject(1) == "Your Weekly Digest: 1 new question in your group"
    assert digest_subject(3) == "Your Weekly Digest: 3 new questions in your group"


def test_weekly_digest_sends_and_clears_queue(client):
    _post_question(client, "ana", "First question")
    _post_question(client, "ben", "Second question")
    _outbox(client).clear()

    app = client.application
    with app.app_context(), session_scope(app) as s:
        result = send_weekly_digest(s)
    assert (result.sent, result.failed, result.questions_processed) == (1, 0, 2)

    outbox = _outbox(client)
    assert [m.to for m in outbox] == ["cat@example.com"]
    assert outbox[0].subject == digest_subject(2)
    assert "First question" in outbox[0].html
    assert "Second question" in outbox[0].html

    with session_scope(app) as s:
        assert s.query(DigestQueueItem).count() == 0

    with app.app_context(), session_scope(app) as s:
        assert send_weekly_digest(s).questions_processed == 0


def test_deleting_question_drops_queued_digest_item(client):
    _post_question(client, "ana", "Never mind")
    with session_scope(client.application) as s:
        qid = s.query(GroupQuestion).one().id
    _login(client, "ana")
    client.post(f"/qa/questions/{qid}/delete")
    with session_scope(client.application) as s:
        assert s.query(DigestQueueItem).count() == 0


# ---------- mail failures ----------

def test_failed_status_email_recorded(client):
    with session_scope(client.application) as s:
        a = Application(
            first_name="Eve",
            last_name="Early",
            email="eve@example.com",
            location="York",
            availability="yes-mostly",
            commitment_level=6,
            commitment_explanation="x",
            growth_goal="x",
            digital_product="x",
            excitement="x",
            agreed_to_guidelines=True,
            gdpr_consent=True,
            status="pending",
        )
        s.add(a)
        s.flush()
        app_id = a.id

    client.application.extensions["mailer"] = _FailingMailer()
    _login(client, "admin")
    r = client.post(f"/admin/applications/{app_id}/status", data={"status": "approved"}, follow_redirects=True)
    assert r.status_code == 200
    assert b"notification email failed" in r.data

    with session_scope(client.application) as s:
        assert s.get(Application, app_id).status == "approved"
        history = s.query(EmailHistory).one()
        assert history.status == "failed"
        assert "provider down" in history.error_message


def test_failed_fanout_does_not_break_posting(client):
    client.application.extensions["mailer"] = _FailingMailer()
    _post_question(client, "ana", "Still saved?")
    with session_scope(client.application) as s:
        assert s.query(GroupQuestion).one().content == "Still saved?"


# ---------- tracking ----------

def _history(client):
    with session_scope(client.application) as s:
        h = EmailHistory(
            recipient_email="eve@example.com",
            recipient_name="Eve Early",
            template_key="approved",
            subject="Welcome",
            status="sent",
        )
        s.add(h)
        s.flush()
        return h.id


def test_allowed_host():
    domains = ("accountabilitycircle.co.uk",)
    assert is_allowed_host("accountabilitycircle.co.uk", domains)
    assert is_allowed_host("www.accountabilitycircle.co.uk", domains)
    assert not is_allowed_host("accountabilitycircle.co.uk.evil.com", domains)
    assert not is_allowed_host("evilaccountabilitycircle.co.uk", domains)
    assert not is_allowed_host("", domains)


def test_open_pixel_counts_only_signed_requests(client):
    hid = _history(client)
    sig = sign_value("track-secret", str(hid))

    r = client.get(f"/email/open/{hid}?sig=bogus")
    assert r.status_code == 200
    assert r.mimetype == "image/gif"

    client.get(f"/email/open/{hid}?sig={sig}")
    client.get(f"/email/open/{hid}?sig={sig}")
    with session_scope(client.application) as s:
        h = s.get(EmailHistory, hid)
        assert h.open_count == 2
        assert h.opened_at is not None


def test_click_redirects_to_allowed_hosts_only(client):
    hid = _history(client)
    sig = sign_value("track-secret", str(hid))
    target = "https://accountabilitycircle.co.uk/auth/signup"

    r = client.get(f"/email/click/{hid}", query_string={"sig": sig, "url": target})
    assert r.status_code == 302
    assert r.headers["Location"] == target

    r = client.get(f"/email/click/{hid}", query_string={"sig": sig, "url": "https://evil.example.com/"})
    assert r.status_code == 403
    r = client.get(f"/email/click/{hid}", query_string={"sig": "bogus", "url": target})
    assert r.status_code == 403
    r = client.get(f"/email/click/{hid}", query_string={"sig": sig, "url": "javascript:alert(1)"})
    assert r.status_code == 400

    with session_scope(client.application) as s:
        assert s.get(EmailHistory, hid).click_count == 1
        assert s.query(EmailClick).one().url == target


def test_tracking_without_secret(client):
    client.application.config["EMAIL_TRACKING_SECRET"] = ""
    hid = _history(client)
    sig = sign_value("track-secret", str(hid))

    r = client.get(f"/email/open/{hid}?sig={sig}")
    assert r.status_code == 200
    assert r.mimetype == "image/gif"
    with session_scope(client.application) as s:
        assert s.get(EmailHistory, hid).open_count == 0

    r = client.get(
        f"/email/click/{hid}",
        query_string={"sig": sig, "url": "https://accountabilitycircle.co.uk/auth/signup"},
    )
    assert r.status_code == 500
    with session_scope(client.application) as s:
        assert s.get(EmailHistory, hid).click_count == 0


# ---------- template admin ----------

def test_template_admin_seeds_edits_and_tests(client):
    _login(client, "admin")
    r = client.get("/admin/email-templates")
    assert r.status_code == 200
    with session_scope(client.application) as s:
        assert {t.template_key for t in s.query(EmailTemplate).all()} == {"approved", "rejected", "pending"}

    r = client.post("/admin/email-templates/approved", data={"subject": " ", "html_content": "<p>x</p>"}, follow_redirects=True)
    assert b"Subject is required." in r.data

    client.post(
        "/admin/email-templates/approved",
        data={"subject": "Welcome {{name}}", "html_content": "<p>Hello {{name}}</p>", "description": "Approval"},
    )
    with session_scope(client.application) as s:
        t = s.query(EmailTemplate).filter(EmailTemplate.template_key == "approved").one()
        assert t.subject == "Welcome {{name}}"
        assert s.query(AuditEvent).filter(AuditEvent.action == "email_template.update").count() == 1

    client.post("/admin/email-templates/approved/test", data={"to_email": "qa@example.com", "test_name": "Jamie Test"})
    outbox = _outbox(client)
    assert outbox[-1].to == "admin@example.com"
    assert outbox[-1].subject == "[TEST] Welcome Jamie Test"
    assert outbox[-1].html == "<p>Hello Jamie Test</p>"

    assert client.get("/admin/email-templates/removed").status_code == 404
    assert client.get("/admin/email-history").status_code == 200
