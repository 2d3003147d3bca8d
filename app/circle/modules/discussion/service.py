from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import and_

from app.circle.constants import REACTION_HEART
from app.circle.modules.discussion.models import GroupAnswer, GroupQuestion, GroupReaction
from app.circle.modules.groups.service import is_group_member
from app.circle.modules.notifications.models import DigestQueueItem

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.circle.models import User


class DiscussionError(ValueError):
    pass


def author_name(user: "User | None") -> str:
    if user is None or user.profile is None or not user.profile.name:
        return "Unknown"
    return user.profile.name


@dataclass
class AnswerView:
    answer: GroupAnswer
    author_name: str
    heart_count: int
    hearted: bool


@dataclass
class QuestionView:
    question: GroupQuestion
    author_name: str
    heart_count: int
    hearted: bool
    answers: list[AnswerView] = field(default_factory=list)


def _hearts(reactions: list[GroupReaction], viewer_id: int | None) -> tuple[int, bool]:
    hearts = [r for r in reactions if r.reaction_type == REACTION_HEART]
    return len(hearts), any(r.user_id == viewer_id for r in hearts)


def _matches(view: QuestionView, needle: str) -> bool:
    haystack = [view.question.content, view.author_name]
    for a in view.answers:
        haystack.append(a.answer.content)
        haystack.append(a.author_name)
    return any(needle in (text or "").lower() for text in haystack)


def list_questions(
    s: "Session",
    group_id: int,
    search: str | None = None,
    viewer_id: int | None = None,
) -> list[QuestionView]:
    """
    Questions of a group, newest first, each with its answers oldest first.
    `search` filters case-insensitively on question/answer text and author names.
    """
    questions = (
        s.query(GroupQuestion)
        .filter(GroupQuestion.group_id == group_id)
        .order_by(GroupQuestion.created_at.desc(), GroupQuestion.id.desc())
        .all()
    )
    views: list[QuestionView] = []
    for q in questions:
        count, hearted = _hearts(q.reactions, viewer_id)
        view = QuestionView(question=q, author_name=author_name(q.author), heart_count=count, hearted=hearted)
        for a in q.answers:
            a_count, a_hearted = _hearts(a.reactions, viewer_id)
            view.answers.append(
                AnswerView(answer=a, author_name=author_name(a.author), heart_count=a_count, hearted=a_hearted)
            )
        views.append(view)

    needle = (search or "").strip().lower()
    if needle:
        views = [v for v in views if _matches(v, needle)]
    return views


def add_question(s: "Session", group_id: int, user: "User", content: str) -> GroupQuestion:
    content = (content or "").strip()
    if not content:
        raise DiscussionError("Question cannot be empty.")
    if not is_group_member(s, group_id, user.id):
        raise DiscussionError("You are not a member of this group.")
    question = GroupQuestion(group_id=group_id, user_id=user.id, content=content)
    s.add(question)
    s.flush()
    return question


def add_answer(s: "Session", question: GroupQuestion, user: "User", content: str) -> GroupAnswer:
    content = (content or "").strip()
    if not content:
        raise DiscussionError("Answer cannot be empty.")
    if not is_group_member(s, question.group_id, user.id):
        raise DiscussionError("You are not a member of this group.")
    answer = GroupAnswer(question_id=question.id, user_id=user.id, content=content)
    s.add(answer)
    s.flush()
    return answer


def _can_delete(owner_id: int, user: "User") -> bool:
    return owner_id == user.id or user.is_admin


def delete_question(s: "Session", question: GroupQuestion, user: "User") -> None:
    if not _can_delete(question.user_id, user):
        raise DiscussionError("You can only delete your own questions.")
    s.query(DigestQueueItem).filter(DigestQueueItem.question_id == question.id).delete(synchronize_session=False)
    s.delete(question)


def delete_answer(s: "Session", answer: GroupAnswer, user: "User") -> None:
    if not _can_delete(answer.user_id, user):
        raise DiscussionError("You can only delete your own answers.")
    s.delete(answer)


def toggle_reaction(
    s: "Session",
    user: "User",
    *,
    question: GroupQuestion | None = None,
    answer: GroupAnswer | None = None,
) -> bool:
    """Add or remove the user's heart on one target. Returns True when the heart is now set."""
    if (question is None) == (answer is None):
        raise DiscussionError("A reaction needs exactly one target.")
    group_id = question.group_id if question is not None else answer.question.group_id  # type: ignore[union-attr]
    if not is_group_member(s, group_id, user.id):
        raise DiscussionError("You are not a member of this group.")

    if question is not None:
        target = GroupReaction.question_id == question.id
    else:
        target = GroupReaction.answer_id == answer.id  # type: ignore[union-attr]
    existing = (
        s.query(GroupReaction)
        .filter(and_(target, GroupReaction.user_id == user.id, GroupReaction.reaction_type == REACTION_HEART))
        .first()
    )
    if existing is not None:
        s.delete(existing)
        return False
    s.add(
        GroupReaction(
            user_id=user.id,
            question_id=question.id if question is not None else None,
            answer_id=answer.id if answer is not None else None,
            reaction_type=REACTION_HEART,
        )
    )
    return True
