from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for

from app.circle.db import db_session
from app.circle.models import User
from app.circle.modules.discussion.models import GroupAnswer, GroupQuestion
from app.circle.modules.discussion.service import (
    DiscussionError,
    add_answer,
    add_question,
    delete_answer,
    delete_question,
    list_questions,
    toggle_reaction,
)
from app.circle.modules.groups.models import Group
from app.circle.modules.groups.service import is_group_member, user_groups
from app.circle.modules.notifications.service import notify_new_question, notify_question_reply
from app.circle.rbac import require_login

bp = Blueprint("discussion", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _require_group_access(group_id: int) -> Group:
    s = db_session()
    group = s.get(Group, group_id)
    if not group:
        abort(404)
    u = _current_user()
    if not u.is_admin and not is_group_member(s, group_id, u.id):
        abort(403)
    return group


def _back(group_id: int):
    return redirect(url_for("discussion.questions_list", group_id=group_id))


@bp.get("/group/qa")
@require_login
def qa_home():
    groups = user_groups(db_session(), _current_user().id)
    if not groups:
        flash("You haven't been added to a group yet.", "info")
        return redirect(url_for("groups.group_view"))
    return _back(groups[0].id)


@bp.get("/group/<int:group_id>/qa")
@require_login
def questions_list(group_id: int):
    s = db_session()
    group = _require_group_access(group_id)
    search = (request.args.get("q") or "").strip()
    questions = list_questions(s, group.id, search=search, viewer_id=_current_user().id)
    return render_template("member/qa.html", group=group, questions=questions, search=search)


@bp.post("/group/<int:group_id>/qa/questions")
@require_login
def question_create(group_id: int):
    s = db_session()
    group = _require_group_access(group_id)
    try:
        question = add_question(s, group.id, _current_user(), request.form.get("content") or "")
    except DiscussionError as e:
        flash(str(e), "danger")
        return _back(group.id)
    s.commit()

    result = notify_new_question(s, question)
    s.commit()
    current_app.logger.info("Question posted id=%s group_id=%s queued=%s", question.id, group.id, result.queued)
    flash("Question posted.", "success")
    return _back(group.id)


@bp.post("/qa/questions/<int:question_id>/answers")
@require_login
def answer_create(question_id: int):
    s = db_session()
    question = s.get(GroupQuestion, question_id)
    if not question:
        abort(404)
    try:
        answer = add_answer(s, question, _current_user(), request.form.get("content") or "")
    except DiscussionError as e:
        flash(str(e), "danger")
        return _back(question.group_id)
    s.commit()

    notify_question_reply(s, question, answer)
    flash("Answer posted.", "success")
    return _back(question.group_id)


@bp.post("/qa/questions/<int:question_id>/delete")
@require_login
def question_delete(question_id: int):
    s = db_session()
    question = s.get(GroupQuestion, question_id)
    if not question:
        abort(404)
    group_id = question.group_id
    try:
        delete_question(s, question, _current_user())
    except DiscussionError:
        abort(403)
    s.commit()
    flash("Question deleted.", "success")
    return _back(group_id)


@bp.post("/qa/answers/<int:answer_id>/delete")
@require_login
def answer_delete(answer_id: int):
    s = db_session()
    answer = s.get(GroupAnswer, answer_id)
    if not answer:
        abort(404)
    group_id = answer.question.group_id
    try:
        delete_answer(s, answer, _current_user())
    except DiscussionError:
        abort(403)
    s.commit()
    flash("Answer deleted.", "success")
    return _back(group_id)


@bp.post("/qa/questions/<int:question_id>/heart")
@require_login
def question_heart(question_id: int):
    s = db_session()
    question = s.get(GroupQuestion, question_id)
    if not question:
        abort(404)
    try:
        toggle_reaction(s, _current_user(), question=question)
    except DiscussionError:
        abort(403)
    s.commit()
    return _back(question.group_id)


@bp.post("/qa/answers/<int:answer_id>/heart")
@require_login
def answer_heart(answer_id: int):
    s = db_session()
    answer = s.get(GroupAnswer, answer_id)
    if not answer:
        abort(404)
    group_id = answer.question.group_id
    try:
        toggle_reaction(s, _current_user(), answer=answer)
    except DiscussionError:
        abort(403)
    s.commit()
    return _back(group_id)
