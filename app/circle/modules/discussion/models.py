from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.circle.models import Base, User


class GroupQuestion(Base):
    __tablename__ = "group_questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    author: Mapped[User] = relationship(User, lazy="selectin")
    answers: Mapped[list["GroupAnswer"]] = relationship(
        "GroupAnswer",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="GroupAnswer.created_at.asc(), GroupAnswer.id.asc()",
        lazy="selectin",
    )
    reactions: Mapped[list["GroupReaction"]] = relationship(
        "GroupReaction",
        cascade="all, delete-orphan",
        primaryjoin="GroupReaction.question_id == GroupQuestion.id",
        lazy="selectin",
    )


class GroupAnswer(Base):
    __tablename__ = "group_answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    question_id: Mapped[int] = mapped_column(ForeignKey("group_questions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    question: Mapped[GroupQuestion] = relationship("GroupQuestion", back_populates="answers")
    author: Mapped[User] = relationship(User, lazy="selectin")
    reactions: Mapped[list["GroupReaction"]] = relationship(
        "GroupReaction",
        cascade="all, delete-orphan",
        primaryjoin="GroupReaction.answer_id == GroupAnswer.id",
        lazy="selectin",
    )


class GroupReaction(Base):
    """A reaction targets exactly one of question/answer."""

    __tablename__ = "group_reactions"
    __table_args__ = (
        CheckConstraint(
            "(question_id IS NULL) <> (answer_id IS NULL)",
            name="ck_group_reactions_single_target",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id: Mapped[int | None] = mapped_column(ForeignKey("group_questions.id", ondelete="CASCADE"), nullable=True, index=True)
    answer_id: Mapped[int | None] = mapped_column(ForeignKey("group_answers.id", ondelete="CASCADE"), nullable=True, index=True)
    reaction_type: Mapped[str] = mapped_column(String(32), nullable=False, default="heart")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
