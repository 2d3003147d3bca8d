import pytest
from werkzeug.security import generate_password_hash

from app.circle import auth, create_app
from app.circle.db import session_scope
from app.circle.models import Base, Permission, Role, User
from app.circle.modules.discussion.models import GroupAnswer, GroupQuestion, GroupReaction
from app.circle.modules.discussion.service import DiscussionError, add_question, list_questions
from app.circle.modules.groups.models import Group, GroupMember
from app.circle.modules.members.models import Profile


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
        perm = Permission(key="admin.view", name="Admin")
        role = Role(key="admin", name="Administrator")
        role.permissions.append(perm)
        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        admin.roles.append(role)
        s.add_all([perm, role, admin])

        group = Group(name="Circle A")
        other = Group(name="Circle B")
        s.add_all([group, other])
        s.flush()
        for key, name, gid in (("ana", "Ana Able", group.id), ("ben", "Ben Bold", group.id), ("cat", "Cat Solo", other.id)):
            u = User(email=f"{key}@example.com", password_hash=generate_password_hash("pw"), is_active=True)
            s.add(u)
            s.flush()
            s.add(Profile(user_id=u.id, name=name))
            s.add(GroupMember(group_id=gid, user_id=u.id))

    return app.test_client()


def _login(client, key):
    client.post("/auth/login", data={"email": f"{key}@example.com", "password": "pw"})


def _group_id(client, name="Circle A"):
    with session_scope(client.application) as s:
        return s.query(Group).filter(Group.name == name).one().id


def _ask(client, key, content):
    gid = _group_id(client)
    _login(client, key)
    client.post(f"/group/{gid}/qa/questions", data={"content": content})
    client.get("/auth/logout")
    with session_scope(client.application) as s:
        return s.query(GroupQuestion).filter(GroupQuestion.content == content.strip()).one().id


def test_qa_home_redirects_to_first_group(client):
    _login(client, "ana")
    r = client.get("/group/qa")
    assert r.status_code == 302
    assert r.headers["Location"].endswith(f"/group/{_group_id(client)}/qa")


def test_non_member_cannot_see_or_post(client):
    gid = _group_id(client)
    _login(client, "cat")
    assert client.get(f"/group/{gid}/qa").status_code == 403
    assert client.post(f"/group/{gid}/qa/questions", data={"content": "hi"}).status_code == 403


def test_admin_can_view_any_group(client):
    _login(client, "admin")
    assert client.get(f"/group/{_group_id(client)}/qa").status_code == 200


def test_question_and_answers_listed(client):
    qid = _ask(client, "ana", "  How do you price a course?  ")
    _login(client, "ben")
    client.post(f"/qa/questions/{qid}/answers", data={"content": "Start low"})
    r = client.post(f"/qa/questions/{qid}/answers", data={"content": "  "}, follow_redirects=True)
    assert b"Answer cannot be empty." in r.data

    with session_scope(client.application) as s:
        views = list_questions(s, _group_id(client))
        assert len(views) == 1
        assert views[0].question.content == "How do you price a course?"
        assert views[0].author_name == "Ana Able"
        assert [a.author_name for a in views[0].answers] == ["Ben Bold"]


def test_search_matches_content_and_names(client):
    _ask(client, "ana", "Pricing question")
    _ask(client, "ben", "Marketing question")
    with session_scope(client.application) as s:
        gid = _group_id(client)
        assert [v.question.content for v in list_questions(s, gid, search="PRICING")] == ["Pricing question"]
        assert [v.question.content for v in list_questions(s, gid, search="ben bold")] == ["Marketing question"]
        assert [v.question.content for v in list_questions(s, gid)] == ["Marketing question", "Pricing question"]
        assert list_questions(s, gid, search="nothing-like-this") == []

    _login(client, "ana")
    r = client.get(f"/group/{gid}/qa?q=pricing")
    assert b"Pricing question" in r.data
    assert b"Marketing question" not in r.data


def test_blank_question_refused(client):
    with session_scope(client.application) as s:
        ana = s.query(User).filter(User.email == "ana@example.com").one()
        with pytest.raises(DiscussionError):
            add_question(s, _group_id(client), ana, "   ")


def test_hearts_toggle(client):
    qid = _ask(client, "ana", "Heart me")
    _login(client, "ben")
    client.post(f"/qa/questions/{qid}/heart")
    with session_scope(client.application) as s:
        ben_id = s.query(User).filter(User.email == "ben@example.com").one().id
        view = list_questions(s, _group_id(client), viewer_id=ben_id)[0]
        assert (view.heart_count, view.hearted) == (1, True)

    client.post(f"/qa/questions/{qid}/heart")
    with session_scope(client.application) as s:
        assert s.query(GroupReaction).count() == 0

    client.post(f"/qa/questions/{qid}/answers", data={"content": "Reply"})
    with session_scope(client.application) as s:
        aid = s.query(GroupAnswer).one().id
    client.post(f"/qa/answers/{aid}/heart")
    with session_scope(client.application) as s:
        reaction = s.query(GroupReaction).one()
        assert reaction.answer_id == aid
        assert reaction.question_id is None

    client.get("/auth/logout")
    _login(client, "cat")
    assert client.post(f"/qa/questions/{qid}/heart").status_code == 403


def test_delete_own_only_admin_any(client):
    qid = _ask(client, "ana", "Delete me")
    _login(client, "ben")
    assert client.post(f"/qa/questions/{qid}/delete").status_code == 403
    client.get("/auth/logout")

    _login(client, "admin")
    assert client.post(f"/qa/questions/{qid}/delete").status_code == 302
    with session_scope(client.application) as s:
        assert s.get(GroupQuestion, qid) is None


def test_author_deletes_answer(client):
    qid = _ask(client, "ana", "Answer me")
    _login(client, "ben")
    client.post(f"/qa/questions/{qid}/answers", data={"content": "Mine"})
    with session_scope(client.application) as s:
        aid = s.query(GroupAnswer).one().id
    client.get("/auth/logout")

    _login(client, "ana")
    assert client.post(f"/qa/answers/{aid}/delete").status_code == 403
    client.get("/auth/logout")

    _login(client, "ben")
    assert client.post(f"/qa/answers/{aid}/delete").status_code == 302
    with session_scope(client.application) as s:
        assert s.query(GroupAnswer).count() == 0
